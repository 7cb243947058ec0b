import numpy as np


def adapt_stepsize(self, step_size, itercorrect, converged):
    """
    Grow the step after easy corrections, shrink it after hard ones and halve it after a
    failure. A halved step may fall below the minimum, the caller stops the run then.
    """
    cont = self.prob.parameters["continuation"]
    if converged:
        if itercorrect == 0:
            step_size *= np.sqrt(2)
        else:
            step_size *= cont["optimal_iterations"] / itercorrect
        # keep step size within specified bounds
        step_size = max(step_size, cont["min_step_size"])
        step_size = min(step_size, cont["max_step_size"])
    else:
        step_size /= 2
    return step_size
