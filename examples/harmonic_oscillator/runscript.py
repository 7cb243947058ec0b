import logging

import numpy as np

from trapcont.problem import Problem
from trapcont.logger import Logger
from trapcont.periodicorbit.newton import newton_periodic_orbit
from trapcont.periodicorbit.trapezoid import extract_period
from trapcont.solver.newton import NewtonOptions
from trapcont.vectorfield import VectorField
from harmonic_oscillator import Harmonic_Oscillator

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("harmonic_oscillator")

# Problem
prob = Problem()
prob.configure_parameters("parameters.yaml")
prob.set_vector_field(VectorField(Harmonic_Oscillator.F, J=Harmonic_Oscillator.J))
prob.set_section(*Harmonic_Oscillator.section())
Harmonic_Oscillator.update_model(prob.parameters)

pb = prob.periodic_orbit_problem(Harmonic_Oscillator.p)
options = NewtonOptions.from_parameters(prob.parameters)
linear_algo = prob.parameters["periodic_orbit"]["linear_algorithm"]
log = Logger(prob.parameters)

# the computed period should not depend on the phase of the initial guess
for iphase, phase in enumerate(np.linspace(-1.0, 1.0, 5)):
    result = newton_periodic_orbit(
        pb, Harmonic_Oscillator.orbit(phase), options, linear_algo, log=log, iter=iphase
    )
    log.screenline("-")
    if not result.converged:
        logger.warning("Newton failed for initial phase %.2f", phase)
        continue
    logger.info(
        "phase %+.2f: T = %.10f, discrete period %.10f",
        phase,
        extract_period(result.x),
        Harmonic_Oscillator.discrete_period(),
    )
