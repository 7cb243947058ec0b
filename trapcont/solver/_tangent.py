import logging

import numpy as np

logger = logging.getLogger(__name__)


def pinned_tangent(self, U, p):
    """
    Tangent to the branch at (U, p) with its parameter component pinned to one before
    normalisation, i.e. the solution of

        [ dG/dU  dG/dp ] [tu]   [0]
        [ 0      1     ] [tp] = [1]

    Returns:
        numpy.ndarray: tangent (tu, tp), normalised with the pseudo-arclength inner product and
        oriented towards increasing p.
    """
    pb = self.problem_at(p)
    jacobian, linsolver = self.linear_system(pb, U)
    J = jacobian(U)
    dpG = self.parameter_derivative(U, p)

    n = len(U)
    tu, tp, converged, _ = self.bordering_solver(linsolver)(
        J, dpG, np.zeros(n), 1.0, np.zeros(n), 1.0
    )
    if not converged:
        raise RuntimeError("Tangent computation at the starting point failed.")
    return self.normalize(np.append(tu, tp))


def bordered_tangent(self, J, dpG, tgt, linsolver):
    """
    Tangent at a converged point from the Jacobian bordered with the previous tangent: solves

        [ dG/dU                   dG/dp             ] t = [0]
        [ theta/n * tgt_u'        (1 - theta) tgt_p ]     [1]

    which keeps the orientation of tgt.

    Returns:
        tuple: (normalised tangent, converged)
    """
    theta = self.prob.parameters["bordered"]["theta"]
    n = len(tgt) - 1
    tu, tp, converged, _ = self.bordering_solver(linsolver).solve_arclength(
        J, dpG, tgt[:-1], tgt[-1], np.zeros(n), 1.0, theta
    )
    t = np.append(tu, tp)
    if not converged or not np.all(np.isfinite(t)):
        logger.warning("Bordered tangent computation failed")
        return tgt, False
    return self.normalize(t), True


def secant_tangent(self, U, p, U_prev, p_prev):
    return self.normalize(np.append(U - U_prev, p - p_prev))
