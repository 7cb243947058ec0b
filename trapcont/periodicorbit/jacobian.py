import numpy as np

from ..bordered import BorderingSolver
from .cyclic import CyclicSolver


class PeriodicOrbitBorderedJacobian:
    """
    Jacobian of the periodic orbit functional seen as A_gamma bordered by the period derivative
    (last column) and the phase condition (last row).

    ``update`` must be called at every new base point before ``solve``.
    """

    def __init__(self, problem, agamma, bls=None):
        self.pb = problem
        self.Agamma = agamma
        self.bls = BorderingSolver(CyclicSolver()) if bls is None else bls
        self.dTG = np.zeros(problem.size)
        self.orbitguess0 = np.zeros(problem.size)

    def update(self, orbitguess0, delta=None):
        self.orbitguess0[:] = orbitguess0[: len(self.orbitguess0)]

        # derivative of the functional with respect to the period
        self.dTG[:] = self.pb.period_derivative(self.orbitguess0, delta)

        self.Agamma.update(self.pb, self.orbitguess0)
        return self

    def __call__(self, orbitguess0):
        return self.update(orbitguess0)

    def matvec(self, du):
        return self.pb.directional_derivative(self.orbitguess0, du)

    def solve(self, rhs, bls=None):
        """
        Solve dG(u0) x = rhs with the bordering algorithm around A_gamma.

        Returns:
            tuple: (x, converged, total number of inner iterations)
        """
        bls = self.bls if bls is None else bls
        N = self.pb.N
        phi = np.zeros(len(rhs) - 1)
        phi[:N] = self.pb.phi

        dX, dl, flag, liniter = bls(
            self.Agamma, self.dTG[:-1], phi, self.dTG[-1], rhs[:-1], rhs[-1]
        )
        return np.append(dX, dl), flag, sum(liniter)


class PeriodicOrbitBorderedLS:
    """Linear solver contract around :meth:`PeriodicOrbitBorderedJacobian.solve`."""

    def __init__(self, bls=None):
        self.bls = bls

    def __call__(self, J, rhs):
        return J.solve(rhs, self.bls)
