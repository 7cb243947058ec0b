import logging
from dataclasses import dataclass, field
from typing import Callable, List

import numpy as np

from ..linearsolvers import DirectSolver, make_linear_solver

logger = logging.getLogger(__name__)


def norm_inf(x):
    return float(np.linalg.norm(x, np.inf))


@dataclass
class NewtonOptions:
    tol: float = 1e-10
    max_iterations: int = 20
    max_residual: float = 1e10
    line_search: bool = False
    max_line_search: int = 10
    linsolver: Callable = field(default_factory=DirectSolver)
    norm: Callable = norm_inf

    @classmethod
    def from_parameters(cls, parameters):
        newton = parameters["newton"]
        return cls(
            tol=newton["tolerance"],
            max_iterations=newton["max_iterations"],
            max_residual=newton["max_residual"],
            line_search=newton["line_search"],
            max_line_search=newton["max_line_search"],
            linsolver=make_linear_solver(parameters),
        )


@dataclass
class NewtonResult:
    x: np.ndarray
    residuals: List[float]
    converged: bool
    iterations: int
    linear_iterations: int


def newton(
    residual,
    jacobian,
    x0,
    options,
    linsolver=None,
    log=None,
    printsol=None,
    deflation=None,
    **screen_data,
):
    """
    Newton-Raphson iterations for residual(x) = 0.

    The Jacobian returned by ``jacobian(x)`` is handed to ``linsolver`` (``options.linsolver``
    by default), so it can be a matrix, a matrix-free operator or any object the linear solver
    understands. Numerical failure never raises: the result carries ``converged=False``.
    With a deflation operator the steps are those of the deflated residual M(x) residual(x),
    while convergence is still judged on the norm of residual(x).

    Args:
        residual: callable returning the residual vector.
        jacobian: callable returning the Jacobian at x.
        x0: initial guess.
        options: :class:`NewtonOptions`.
        linsolver: linear solver overriding ``options.linsolver``.
        log: optional :class:`~trapcont.logger.Logger` for screen output.
        printsol: optional callable x -> float shown in the "Period" column.
        deflation: optional :class:`~trapcont.solver.deflation.DeflationOperator`.
        screen_data: extra columns passed to the logger (iter, param, step).

    Returns:
        NewtonResult
    """
    linsolver = options.linsolver if linsolver is None else linsolver
    x = np.array(x0, dtype=np.float64)
    r = residual(x)
    res = options.norm(r)
    residuals = [res]
    itnewton = 0
    linear_iterations = 0

    def screenout(liniter=None):
        if log is None:
            return
        data = dict(screen_data, correct=itnewton, res=res)
        if liniter is not None:
            data["liniter"] = liniter
        if printsol is not None:
            data["period"] = printsol(x)
        log.screenout(**data)

    screenout()
    while True:
        # Check divergence criteria
        if not np.isfinite(res) or res > options.max_residual:
            logger.warning("Newton diverged at iteration %d (residual %.2e)", itnewton, res)
            return NewtonResult(x, residuals, False, itnewton, linear_iterations)

        # Check convergence criteria
        if res < options.tol:
            return NewtonResult(x, residuals, True, itnewton, linear_iterations)

        # Maximum iterations reached
        if itnewton >= options.max_iterations:
            logger.warning(
                "Newton did not converge after %d iterations (residual %.2e)", itnewton, res
            )
            return NewtonResult(x, residuals, False, itnewton, linear_iterations)

        J = jacobian(x)
        dx, lin_converged, liniter = linsolver(J, r)
        linear_iterations += liniter
        if not lin_converged:
            logger.warning("Linear solve did not converge at Newton iteration %d", itnewton)
            if not np.all(np.isfinite(dx)):
                return NewtonResult(x, residuals, False, itnewton, linear_iterations)
        if deflation is not None:
            dx = deflation.deflate_step(x, dx)

        step = 1.0
        x_new = x - dx
        r_new = residual(x_new)
        res_new = options.norm(r_new)

        # backtracking on the residual norm
        if options.line_search:
            nbacktrack = 0
            while not res_new < res and nbacktrack < options.max_line_search:
                step /= 2
                x_new = x - step * dx
                r_new = residual(x_new)
                res_new = options.norm(r_new)
                nbacktrack += 1

        x, r, res = x_new, r_new, res_new
        itnewton += 1
        residuals.append(res)
        screenout(liniter)
