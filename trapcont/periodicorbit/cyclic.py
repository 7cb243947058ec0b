import logging

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .trapezoid import JacobianKind

logger = logging.getLogger(__name__)


class CyclicOperator:
    """
    The operator A_gamma of the periodic orbit Jacobian: the (M-1)-block cyclic matrix Jc plus
    the closure row dx_{M-1} - gamma * dx_0.

    In matrix mode, ``update`` assembles Jc and its LU factorisation is computed on the next
    inversion. In matrix-free mode, ``update`` only records the base point and the problem, and
    Jc is inverted with an iterative solver.
    """

    def __init__(self, N, M, gamma=1.0, matrix_free=False):
        self.N = N
        self.M = M
        self.gamma = gamma
        self.matrix_free = matrix_free
        self.orbitguess = None
        self.prob = None
        self.Jc = None
        self._lu = None

    @property
    def shape(self):
        return (self.N * self.M, self.N * self.M)

    def update(self, problem, orbitguess):
        if (problem.N, problem.M) != (self.N, self.M):
            raise ValueError(
                f"Problem dimensions (N={problem.N}, M={problem.M}) do not match the cyclic "
                f"operator (N={self.N}, M={self.M})"
            )
        self.prob = problem
        if self.orbitguess is None or len(self.orbitguess) != len(orbitguess):
            self.orbitguess = np.array(orbitguess, dtype=np.float64)
        else:
            self.orbitguess[:] = orbitguess

        if not self.matrix_free:
            self.Jc = problem.jacobian(JacobianKind.CYCLIC_SPARSE, self.orbitguess)
            self._lu = None
        return self

    def factorization(self):
        if self.Jc is None:
            raise RuntimeError("Cyclic operator has not been updated at a base point.")
        if self._lu is None:
            self._lu = spla.splu(sp.csc_matrix(self.Jc))
        return self._lu

    def matvec(self, dx):
        if self.prob is None:
            raise RuntimeError("Cyclic operator has not been updated at a base point.")
        return self.prob.agamma_matvec(self.orbitguess, dx, self.gamma)

    def apply_inverse(self, rhs, linsolver=None):
        """
        Solve A_gamma x = rhs.

        Returns:
            tuple: (x, converged, iterations)
        """
        N = self.N
        if len(rhs) != N * self.M:
            raise ValueError(f"Right-hand side must have length {N * self.M}, got {len(rhs)}")
        if self.prob is None:
            raise RuntimeError("Cyclic operator has not been updated at a base point.")

        rhs_c = rhs[: -N]
        if not self.matrix_free:
            try:
                xbar = self.factorization().solve(rhs_c)
                converged = bool(np.all(np.isfinite(xbar)))
            except RuntimeError as e:
                # singular cyclic matrix
                logger.warning("LU factorisation of the cyclic matrix failed: %s", e)
                xbar = np.full(len(rhs_c), np.nan)
                converged = False
            numiter = 1
            if not converged:
                logger.warning("Sparse solver for A_gamma did not converge")
        else:
            linsolver = self.prob.linsolver if linsolver is None else linsolver
            xbar, converged, numiter = linsolver(
                lambda dx: self.prob.cyclic_matvec(self.orbitguess, dx), rhs_c
            )
            if not converged:
                logger.warning("Matrix-free solver for A_gamma did not converge")

        x = np.empty(len(rhs))
        x[: -N] = xbar
        x[-N:] = self.gamma * x[:N] + rhs[-N:]
        return x, converged, numiter


class CyclicSolver:
    """Linear solver for :class:`CyclicOperator`; ``linsolver`` is used in matrix-free mode."""

    def __init__(self, linsolver=None):
        self.linsolver = linsolver

    def __call__(self, A, rhs):
        return A.apply_inverse(rhs, self.linsolver)
