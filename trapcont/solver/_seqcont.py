import dataclasses
import logging

from ..periodicorbit.trapezoid import extract_period
from .newton import newton

logger = logging.getLogger(__name__)


def seqcont(self):
    """
    Sequential continuation method.

    This method performs continuation by correcting only the orbit U, while keeping the
    continuation parameter at its predicted value.
    """
    # Starting point solution
    U = self.U0
    p = self.p0

    # Read parameters
    parameters = self.prob.parameters
    cont = parameters["continuation"]
    step_size = cont["initial_step_size"]
    direction = cont["direction"]
    options = dataclasses.replace(
        self.newton_options,
        tol=cont["corrections_tolerance"],
        max_iterations=cont["max_iterations"],
    )

    # Continuation limits
    max_points = cont["num_points"]
    min_param = cont["min_parameter_value"]
    max_param = cont["max_parameter_value"]

    # --- MAIN CONTINUATION LOOP
    itercont = 1
    while itercont <= max_points:
        # Predict next continuation parameter value
        p_pred = p + step_size * direction

        # Check bounds before doing corrections
        if not (min_param <= p_pred <= max_param):
            logger.info(
                "Continuation parameter %.4e outside specified bounds [%.4e, %.4e]",
                p_pred,
                min_param,
                max_param,
            )
            break

        # Correction iterations at fixed parameter
        pb = self.problem_at(p_pred)
        jacobian, linsolver = self.linear_system(pb, U)
        result = newton(
            pb.evaluate,
            jacobian,
            U,
            options,
            linsolver=linsolver,
            log=self.log,
            printsol=extract_period,
            iter=itercont,
            param=p_pred,
            step=direction * step_size,
        )
        converged = result.converged and extract_period(result.x) > 0

        # Handle convergence results
        if converged:
            self.log.store(
                sol_U=result.x,
                sol_T=extract_period(result.x),
                sol_p=p_pred,
                sol_itercorrect=result.iterations,
                sol_step=direction * step_size,
                sol_residual=result.residuals[-1],
            )

            # Accept the corrected solution
            U = result.x
            p = p_pred
            self.update_section(U, p, itercont)
            itercont += 1
        else:
            logger.warning(
                "Correction failed at continuation point %d, residual %.2e",
                itercont,
                result.residuals[-1],
            )

        # Adaptive step size for next point
        if itercont > cont["adaptive_step_start"] or not converged:
            step_size = self.adapt_stepsize(step_size, result.iterations, converged)

        # Early exit if step size becomes too small
        if abs(step_size) < cont["min_step_size"]:
            logger.warning("Step size too small. Terminating continuation.")
            break

        self.log.screenline("-")
