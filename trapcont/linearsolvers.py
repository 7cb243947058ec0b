"""
Linear solvers used throughout the package.

Every solver is a callable with the contract
``solver(operator, rhs) -> (x, converged, iterations)``.
Non-convergence is reported through the flag, never raised.
"""

import logging

import numpy as np
import scipy.linalg as spl
import scipy.sparse as sp
import scipy.sparse.linalg as spla

logger = logging.getLogger(__name__)


def is_matrix(J):
    return isinstance(J, np.ndarray) or sp.issparse(J)


def apply_operator(J, x):
    """Apply a matrix, a callable or an object exposing ``matvec`` to x."""
    if is_matrix(J):
        return J @ x
    if hasattr(J, "matvec"):
        return J.matvec(x)
    if callable(J):
        return J(x)
    raise TypeError(f"Cannot apply operator of type {type(J).__name__}.")


def as_linear_operator(J, n):
    if isinstance(J, spla.LinearOperator) or is_matrix(J):
        return J
    return spla.LinearOperator((n, n), matvec=lambda x: apply_operator(J, x), dtype=np.float64)


class DirectSolver:
    """
    Direct solve of J x = rhs.

    Dense arrays go through LAPACK, sparse matrices through SuperLU, and an existing ``splu``
    factorisation is reused as is.
    """

    def __call__(self, J, rhs):
        if isinstance(J, spla.SuperLU):
            x = J.solve(rhs)
        elif sp.issparse(J):
            x = spla.spsolve(sp.csc_matrix(J), rhs)
        elif isinstance(J, np.ndarray):
            try:
                x = spl.solve(J, rhs, check_finite=False)
            except spl.LinAlgError as e:
                logger.warning("Dense direct solve failed: %s", e)
                return np.full_like(rhs, np.nan, dtype=np.float64), False, 1
        else:
            raise TypeError(
                f"DirectSolver needs an assembled matrix or a factorisation, "
                f"got {type(J).__name__}. "
                "Use an iterative solver for matrix-free operators."
            )
        x = np.asarray(x, dtype=np.float64).reshape(np.shape(rhs))
        converged = bool(np.all(np.isfinite(x)))
        if not converged:
            logger.warning("Direct solver returned a non-finite solution (singular operator?)")
        return x, converged, 1


class GMRESSolver:
    """
    Restarted GMRES from scipy, usable with matrices and matrix-free operators.

    Args:
        tol: relative residual tolerance.
        max_iterations: maximum number of restart cycles.
        restart: Krylov subspace dimension between restarts.
        preconditioner: optional operator approximating the inverse of J.
    """

    def __init__(self, tol=1e-10, max_iterations=500, restart=200, preconditioner=None):
        self.tol = tol
        self.max_iterations = max_iterations
        self.restart = restart
        self.preconditioner = preconditioner

    def __call__(self, J, rhs):
        n = len(rhs)
        A = as_linear_operator(J, n)
        Mop = None
        if self.preconditioner is not None:
            Mop = as_linear_operator(self.preconditioner, n)

        iterations = 0

        def count(_):
            nonlocal iterations
            iterations += 1

        x, info = spla.gmres(
            A,
            rhs,
            rtol=self.tol,
            atol=0.0,
            restart=min(self.restart, n),
            maxiter=self.max_iterations,
            M=Mop,
            callback=count,
            callback_type="pr_norm",
        )
        converged = info == 0 and bool(np.all(np.isfinite(x)))
        if not converged:
            logger.warning("GMRES did not converge (info = %d, %d iterations)", info, iterations)
        return x, converged, iterations


def make_linear_solver(parameters):
    """Inner linear solver described by the ``linear_solver`` section of the parameters."""
    ls = parameters["linear_solver"]
    if ls["method"] == "direct":
        return DirectSolver()
    elif ls["method"] == "gmres":
        return GMRESSolver(
            tol=ls["tolerance"], max_iterations=ls["max_iterations"], restart=ls["restart"]
        )
    raise ValueError(f"Unknown linear solver method: {ls['method']}")
