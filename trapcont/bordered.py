"""
Solvers for bordered linear systems

    [ J          a       ] [dX]   [R]
    [ xiu * b'   xip * c ] [dl] = [n]

where J is a sparse/dense matrix or a matrix-free operator. Used by the pseudo-arclength
corrector and by the Newton solver of the periodic orbit functional.
"""

import logging
from enum import Enum

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .linearsolvers import DirectSolver, apply_operator, is_matrix

logger = logging.getLogger(__name__)


class BorderedAlgorithm(Enum):
    BORDERING = "bordering"
    FULL = "full"
    FULL_MATRIX_FREE = "full_matrix_free"


def materialize(J, n):
    """Dense matrix of a matrix-free operator, built column by column."""
    if is_matrix(J):
        return J
    A = np.zeros((n, n))
    e = np.zeros(n)
    for k in range(n):
        e[k] = 1.0
        A[:, k] = apply_operator(J, e)
        e[k] = 0.0
    return A


def bordered_matrix_full(J, a, b, c, xiu=1.0, xip=1.0):
    """
    Assemble the (n+1) x (n+1) bordered matrix. Sparse J gives a CSC matrix, anything else a
    dense array.
    """
    n = len(a)
    if sp.issparse(J):
        return sp.bmat(
            [
                [J, sp.csc_matrix(np.reshape(a, (n, 1)))],
                [sp.csc_matrix(xiu * np.reshape(b, (1, n))), sp.csc_matrix([[xip * c]])],
            ],
            format="csc",
        )
    Jd = materialize(J, n)
    return np.block(
        [[Jd, np.reshape(a, (n, 1))], [xiu * np.reshape(b, (1, n)), np.array([[xip * c]])]]
    )


class BorderingSolver:
    """
    Bordered linear solver.

    Args:
        linsolver: inner solver for J, following ``(operator, rhs) -> (x, converged, iterations)``.
        algorithm: a :class:`BorderedAlgorithm` (or its string value).
    """

    def __init__(self, linsolver=None, algorithm=BorderedAlgorithm.BORDERING):
        self.linsolver = DirectSolver() if linsolver is None else linsolver
        try:
            self.algorithm = BorderedAlgorithm(algorithm)
        except ValueError:
            raise ValueError(
                f"Algorithm {algorithm} for bordered linear systems is not implemented"
            ) from None

    def __call__(self, J, a, b, c, R, n, xiu=1.0, xip=1.0):
        """
        Solve the bordered system.

        Returns:
            tuple: (dX, dl, converged, iterations) where iterations holds the iteration count
            of each inner solve.
        """
        if len(a) != len(R) or len(b) != len(R):
            raise ValueError(
                f"Bordered system size mismatch: len(a)={len(a)}, len(b)={len(b)}, len(R)={len(R)}"
            )

        if self.algorithm == BorderedAlgorithm.BORDERING:
            return self._bordering(J, a, b, c, R, n, xiu, xip)
        elif self.algorithm == BorderedAlgorithm.FULL:
            return self._full(J, a, b, c, R, n, xiu, xip)
        elif self.algorithm == BorderedAlgorithm.FULL_MATRIX_FREE:
            return self._full_matrix_free(J, a, b, c, R, n, xiu, xip)

    def solve_arclength(self, J, dR, tau_u, tau_p, R, n, theta):
        """
        Pseudo-arclength variant, the last row being weighted by theta / len(tau_u) on the state
        component of the tangent and by (1 - theta) on its parameter component.
        """
        if not 0.0 <= theta <= 1.0:
            raise ValueError(f"theta must lie in [0, 1], got: {theta}")
        xiu = theta / len(tau_u)
        xip = 1.0 - theta
        return self(J, dR, tau_u, tau_p, R, n, xiu=xiu, xip=xip)

    def _bordering(self, J, a, b, c, R, n, xiu, xip):
        x1, cv1, it1 = self.linsolver(J, R)
        x2, cv2, it2 = self.linsolver(J, a)

        dl = (n - xiu * np.dot(b, x1)) / (xip * c - xiu * np.dot(b, x2))
        dX = x1 - dl * x2

        converged = cv1 and cv2 and bool(np.isfinite(dl))
        if not converged:
            logger.warning("Bordering solve did not converge")
        return dX, dl, converged, (it1, it2)

    def _full(self, J, a, b, c, R, n, xiu, xip):
        A = bordered_matrix_full(J, a, b, c, xiu, xip)
        rhs = np.append(R, n)
        if sp.issparse(A):
            sol = spla.spsolve(A, rhs)
        else:
            sol, _, _ = DirectSolver()(A, rhs)

        converged = bool(np.all(np.isfinite(sol)))
        if not converged:
            logger.warning("Full bordered solve returned a non-finite solution")
        return sol[:-1], sol[-1], converged, (1, 0)

    def _full_matrix_free(self, J, a, b, c, R, n, xiu, xip):
        size = len(a)

        def matvec(v):
            v = np.ravel(v)
            out = np.empty(size + 1)
            out[:-1] = apply_operator(J, v[:-1]) + a * v[-1]
            out[-1] = xiu * np.dot(b, v[:-1]) + xip * c * v[-1]
            return out

        op = spla.LinearOperator((size + 1, size + 1), matvec=matvec, dtype=np.float64)
        sol, converged, it = self.linsolver(op, np.append(R, n))
        return sol[:-1], sol[-1], converged, (it, 0)
