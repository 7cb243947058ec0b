import logging

import numpy as np

from ..periodicorbit.trapezoid import extract_period
from ._tangent import bordered_tangent, secant_tangent

logger = logging.getLogger(__name__)


def psacont(self):
    """
    Pseudo-arc length continuation method.

    This method performs continuation by correcting both the orbit U and the continuation
    parameter p at predicted values. The corrections solve the Jacobian of the periodic orbit
    functional bordered by dG/dp and by the theta-weighted tangent, the inner solves going
    through the periodic orbit linear solver.
    """
    # Starting point solution
    U = self.U0
    p = self.p0

    # Read parameters
    parameters = self.prob.parameters
    cont = parameters["continuation"]
    step_size = cont["initial_step_size"]
    max_iterations = cont["max_iterations"]
    min_iterations = cont["min_iterations"]
    tolerance = cont["corrections_tolerance"]
    tangent_predictor = cont["tangent_predictor"]
    theta = parameters["bordered"]["theta"]
    max_residual = self.newton_options.max_residual
    norm = self.newton_options.norm

    # Continuation limits
    max_points = cont["num_points"]
    min_param = cont["min_parameter_value"]
    max_param = cont["max_parameter_value"]

    # stored tangents are travel tangents times direction, so this recovers the travel tangent
    tgt = self.tgt0 * cont["direction"]

    # --- MAIN CONTINUATION LOOP
    itercont = 1
    while itercont <= max_points:
        # Prediction step along tangent
        U_pred = U + tgt[:-1] * step_size
        p_pred = p + tgt[-1] * step_size

        # Check bounds before doing corrections
        if not (min_param <= p_pred <= max_param):
            logger.info(
                "Continuation parameter %.4e outside specified bounds [%.4e, %.4e]",
                p_pred,
                min_param,
                max_param,
            )
            break

        # Correction iterations
        itercorrect = 0
        liniter = 0
        while True:
            pb = self.problem_at(p_pred)
            G = pb.evaluate(U_pred)
            arclength = (
                theta / len(U) * np.dot(U_pred - U, tgt[:-1])
                + (1 - theta) * (p_pred - p) * tgt[-1]
                - step_size
            )
            residual = max(norm(G), abs(arclength))

            # Check convergence criteria
            converged_now = residual < tolerance and itercorrect >= min_iterations
            if converged_now:
                break

            # Check divergence criteria
            if not np.isfinite(residual) or residual > max_residual:
                converged_now = False
                break

            # Maximum iterations reached
            if itercorrect >= max_iterations:
                converged_now = False
                break

            self.log.screenout(
                iter=itercont,
                correct=itercorrect,
                res=residual,
                liniter=liniter,
                period=extract_period(U_pred),
                param=p_pred,
                step=step_size,
            )

            # Corrections from the Jacobian bordered by dG/dp and the tangent
            jacobian, linsolver = self.linear_system(pb, U_pred)
            J = jacobian(U_pred)
            dpG = self.parameter_derivative(U_pred, p_pred, G)
            dU, dp, lin_converged, its = self.bordering_solver(linsolver).solve_arclength(
                J, dpG, tgt[:-1], tgt[-1], G, arclength, theta
            )
            liniter = int(np.sum(its))
            if not lin_converged:
                logger.warning("Linear solve failed during correction %d", itercorrect)
                converged_now = False
                break

            # Apply correction
            U_pred = U_pred - dU
            p_pred = p_pred - dp
            itercorrect += 1

        if converged_now and extract_period(U_pred) <= 0:
            logger.warning("Correction converged to a non-physical period, rejecting the point")
            converged_now = False

        if converged_now:
            # Compute new tangent with converged solution
            if tangent_predictor == "secant":
                tgt_next = secant_tangent(self, U_pred, p_pred, U, p)
            elif tangent_predictor == "bordered":
                jacobian, linsolver = self.linear_system(pb, U_pred)
                J = jacobian(U_pred)
                dpG = self.parameter_derivative(U_pred, p_pred, G)
                tgt_next, _ = bordered_tangent(self, J, dpG, tgt, linsolver)

            # calculate angle between tangents
            tgt_inner = self.weighted_dot(tgt_next, tgt)
            beta = np.rad2deg(np.arccos(np.clip(tgt_inner, -1.0, 1.0)))

            self.log.screenout(
                iter=itercont,
                correct=itercorrect,
                res=residual,
                liniter=liniter,
                period=extract_period(U_pred),
                param=p_pred,
                step=step_size,
                beta=beta,
            )  # need final screenout to print beta
            self.log.store(
                sol_U=U_pred,
                sol_T=extract_period(U_pred),
                sol_p=p_pred,
                sol_tgt=tgt_next * cont["direction"],
                sol_beta=beta,
                sol_itercorrect=itercorrect,
                sol_step=step_size,
                sol_residual=residual,
            )

            # Accept the corrected solution
            U = U_pred
            p = p_pred
            tgt = tgt_next
            self.update_section(U, p, itercont)
            itercont += 1
        else:
            logger.warning(
                "Correction failed at continuation point %d, residual %.2e", itercont, residual
            )

        # Adaptive step size for next point
        if itercont > cont["adaptive_step_start"] or not converged_now:
            step_size = self.adapt_stepsize(step_size, itercorrect, converged_now)

        # Early exit if step size becomes too small
        if abs(step_size) < cont["min_step_size"]:
            logger.warning("Step size too small. Terminating continuation.")
            break

        self.log.screenline("-")
