import copy
from enum import Enum

from ..bordered import BorderingSolver
from ..linearsolvers import DirectSolver
from ..solver.newton import newton
from .cyclic import CyclicOperator, CyclicSolver
from .jacobian import PeriodicOrbitBorderedJacobian, PeriodicOrbitBorderedLS
from .trapezoid import JacobianKind, extract_period


class PeriodicOrbitLinearAlgo(Enum):
    FULL_LU = "full_lu"
    FULL_SPARSE_INPLACE = "full_sparse_inplace"
    BORDERED_LU = "bordered_lu"
    FULL_MATRIX_FREE = "full_matrix_free"
    BORDERED_MATRIX_FREE = "bordered_matrix_free"


MATRIX_FREE_ALGOS = (
    PeriodicOrbitLinearAlgo.FULL_MATRIX_FREE,
    PeriodicOrbitLinearAlgo.BORDERED_MATRIX_FREE,
)


def periodic_orbit_linear_system(
    problem, orbitguess, linsolver, linear_algo, gamma=1.0, J0=None, preconditioner=None
):
    """
    Jacobian factory and matching linear solver for the periodic orbit functional.

    Args:
        problem: :class:`~trapcont.periodicorbit.trapezoid.PeriodicOrbitTrapProblem`.
        orbitguess: orbit vector used to allocate the in-place Jacobian.
        linsolver: iterative solver for the matrix-free algorithms, direct solver otherwise.
        linear_algo: :class:`PeriodicOrbitLinearAlgo` or its string value.
        gamma: closure coefficient of A_gamma.
        J0: preallocated CSR Jacobian reused by ``FULL_SPARSE_INPLACE``.
        preconditioner: ``"block_jacobi"`` refreshes the preconditioner of a copy of linsolver
            with the block-Jacobi inverse of the cyclic matrix at every Jacobian evaluation
            (``BORDERED_MATRIX_FREE`` only). None or ``"none"`` leaves linsolver untouched.

    Returns:
        tuple: (jacobian, linsolver, J0) where jacobian(u) returns the operator handed to
        linsolver and J0 is the in-place matrix (None for other algorithms).
    """
    linear_algo = PeriodicOrbitLinearAlgo(linear_algo)
    if linear_algo in MATRIX_FREE_ALGOS and isinstance(linsolver, DirectSolver):
        raise ValueError(
            f"Linear algorithm '{linear_algo.value}' is matrix-free and needs an iterative "
            "linear solver."
        )
    precondition = preconditioner not in (None, "none")
    if precondition and (
        preconditioner != "block_jacobi"
        or linear_algo != PeriodicOrbitLinearAlgo.BORDERED_MATRIX_FREE
        or not hasattr(linsolver, "preconditioner")
    ):
        raise ValueError(
            f"Preconditioner '{preconditioner}' is not available for linear algorithm "
            f"'{linear_algo.value}' with {type(linsolver).__name__}."
        )

    if linear_algo == PeriodicOrbitLinearAlgo.FULL_LU:
        def jacobian(u):
            return problem.jacobian(JacobianKind.FULL_SPARSE, u, gamma=gamma)

        return jacobian, DirectSolver(), None

    elif linear_algo == PeriodicOrbitLinearAlgo.FULL_SPARSE_INPLACE:
        if J0 is None or J0.shape != (problem.size, problem.size):
            J0 = problem.jacobian(JacobianKind.FULL_SPARSE, orbitguess, gamma=gamma)

        def jacobian(u):
            return problem.jacobian(JacobianKind.FULL_SPARSE_INPLACE, u, J0=J0, gamma=gamma)

        return jacobian, DirectSolver(), J0

    elif linear_algo == PeriodicOrbitLinearAlgo.FULL_MATRIX_FREE:
        def jacobian(u):
            return lambda du: problem.directional_derivative(u, du)

        return jacobian, linsolver, None

    # bordered algorithms: A_gamma bordered by dG/dT and the phase condition
    matrix_free = linear_algo == PeriodicOrbitLinearAlgo.BORDERED_MATRIX_FREE
    if precondition:
        linsolver = copy.copy(linsolver)
    agamma = CyclicOperator(problem.N, problem.M, gamma=gamma, matrix_free=matrix_free)
    inner = CyclicSolver(linsolver if matrix_free else None)
    jac = PeriodicOrbitBorderedJacobian(problem, agamma, BorderingSolver(inner))
    if not precondition:
        return jac.update, PeriodicOrbitBorderedLS(), None

    def jacobian(u):
        linsolver.preconditioner = problem.block_jacobi(u, cyclic=True)
        return jac.update(u)

    return jacobian, PeriodicOrbitBorderedLS(), None


def newton_periodic_orbit(
    problem,
    orbitguess,
    options,
    linear_algo=PeriodicOrbitLinearAlgo.BORDERED_LU,
    log=None,
    gamma=1.0,
    preconditioner=None,
    deflation=None,
    **screen_data,
):
    """
    Newton-Raphson on the periodic orbit functional.

    ``options.linsolver`` is the iterative solver of the matrix-free algorithms; the matrix
    algorithms always factorise.

    A :class:`~trapcont.solver.deflation.DeflationOperator` keeps the iterations away from
    orbits already found. ``preconditioner`` is passed to :func:`periodic_orbit_linear_system`.

    Returns:
        NewtonResult
    """
    orbitguess = problem._check_orbit(orbitguess)
    jacobian, linsolver, _ = periodic_orbit_linear_system(
        problem,
        orbitguess,
        options.linsolver,
        linear_algo,
        gamma=gamma,
        preconditioner=preconditioner,
    )
    return newton(
        problem.evaluate,
        jacobian,
        orbitguess,
        options,
        linsolver=linsolver,
        log=log,
        printsol=extract_period,
        deflation=deflation,
        **screen_data,
    )
