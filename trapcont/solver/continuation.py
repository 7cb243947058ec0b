import numpy as np

from ..bordered import BorderingSolver
from ..periodicorbit.newton import PeriodicOrbitLinearAlgo, periodic_orbit_linear_system
from ._cont_step import adapt_stepsize
from ._psacont import psacont
from ._section import update_section
from ._seqcont import seqcont
from ._starting_correction import correct_starting_point
from .newton import NewtonOptions


class ConX:
    def __init__(self, prob, start, log):
        self.prob = prob
        self.U0 = start.U0
        self.p0 = start.p0
        self.tgt0 = start.tgt0
        self.log = log

        parameters = prob.parameters
        self.linear_algo = PeriodicOrbitLinearAlgo(parameters["periodic_orbit"]["linear_algorithm"])
        self.gamma = parameters["periodic_orbit"]["gamma"]
        self.newton_options = NewtonOptions.from_parameters(parameters)

        # problem at the starting parameter, holds the section shared along the branch
        self.pb0 = prob.periodic_orbit_problem(self.p0, self.U0)
        self.U0 = self.pb0._check_orbit(self.U0)
        self._J0 = None

    def problem_at(self, p):
        """Periodic orbit problem at parameter value p, sharing the current section."""
        return self.pb0.with_parameter(p)

    def linear_system(self, pb, U):
        """Jacobian factory and linear solver of the periodic orbit functional of pb."""
        jacobian, linsolver, self._J0 = periodic_orbit_linear_system(
            pb,
            U,
            self.newton_options.linsolver,
            self.linear_algo,
            gamma=self.gamma,
            J0=self._J0,
            preconditioner=self.prob.parameters["linear_solver"]["preconditioner"],
        )
        return jacobian, linsolver

    def bordering_solver(self, linsolver):
        """Solver for the system bordered by the parameter derivative and the tangent."""
        return BorderingSolver(linsolver, self.prob.parameters["bordered"]["algorithm"])

    def parameter_derivative(self, U, p, G=None):
        """Forward difference of the functional with respect to the continuation parameter."""
        eps = self.prob.parameters["continuation"]["parameter_fd_step"]
        if G is None:
            G = self.problem_at(p).evaluate(U)
        return (self.problem_at(p + eps).evaluate(U) - G) / eps

    def weighted_dot(self, t1, t2):
        """Inner product of the pseudo-arclength condition."""
        theta = self.prob.parameters["bordered"]["theta"]
        n = len(t1) - 1
        return theta / n * np.dot(t1[:-1], t2[:-1]) + (1 - theta) * t1[-1] * t2[-1]

    def normalize(self, t):
        return t / np.sqrt(self.weighted_dot(t, t))

    def update_section(self, U, p, itercont):
        """
        Re-centres the phase condition on the current orbit every few points.
        Implementation is imported from _section module.
        """
        return update_section(self, U, p, itercont)

    def correct_starting_point(self):
        """
        Corrects the starting point for continuation.
        Implementation is imported from _starting_correction module.
        """
        return correct_starting_point(self)

    def seqcont(self):
        """
        Performs sequential continuation.
        Implementation is imported from _seqcont module.
        """
        return seqcont(self)

    def psacont(self):
        """
        Performs pseudo-arclength continuation.
        Implementation is imported from _psacont module.
        """
        return psacont(self)

    def adapt_stepsize(self, *args, **kwargs):
        """
        Performs continuation step adaptation.
        Implementation is imported from _cont_step module.
        """
        return adapt_stepsize(self, *args, **kwargs)

    def run(self):
        # correct starting solution
        self.correct_starting_point()

        # perform continuation
        if self.prob.parameters["continuation"]["method"] == "sequential":
            self.seqcont()
        elif self.prob.parameters["continuation"]["method"] == "pseudo_arclength":
            self.psacont()
        return self.log.branch()
