from ..periodicorbit.trapezoid import extract_period
from ._tangent import pinned_tangent
from .newton import newton


def correct_starting_point(self):
    parameters = self.prob.parameters
    func_start = parameters["starting_point"]["source"] == "function"
    psa = parameters["continuation"]["method"] == "pseudo_arclength"

    pb = self.problem_at(self.p0)
    if func_start:
        # Newton on the orbit at fixed parameter
        jacobian, linsolver = self.linear_system(pb, self.U0)
        result = newton(
            pb.evaluate,
            jacobian,
            self.U0,
            self.newton_options,
            linsolver=linsolver,
            log=self.log,
            printsol=extract_period,
            iter=0,
            param=self.p0,
        )
        if not result.converged:
            raise RuntimeError(
                f"Starting point correction failed after {result.iterations} iterations, "
                f"residual {result.residuals[-1]:.2e}"
            )
        self.U0 = result.x
        itercorrect = result.iterations
        residual = result.residuals[-1]
    else:
        # restart from a stored solution, already converged
        itercorrect = 0
        residual = self.newton_options.norm(pb.evaluate(self.U0))
        self.log.screenout(
            iter=0, correct=0, res=residual, period=extract_period(self.U0), param=self.p0
        )

    if extract_period(self.U0) <= 0:
        raise RuntimeError(
            f"Starting point converged to a non-physical period {extract_period(self.U0):.3e}"
        )

    # Compute tangent vector with the parameter component pinned (ref. Peeters et al.)
    if psa and self.tgt0 is None:
        self.tgt0 = pinned_tangent(self, self.U0, self.p0)

    self.log.store(
        sol_U=self.U0,
        sol_T=extract_period(self.U0),
        sol_p=self.p0,
        sol_tgt=self.tgt0,
        sol_itercorrect=itercorrect,
        sol_step=0.0,
        sol_residual=residual,
    )
    self.log.screenline("-")
