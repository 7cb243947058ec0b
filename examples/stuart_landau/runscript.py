import logging

from trapcont.problem import Problem
from trapcont.startingpoint import StartingPoint
from trapcont.logger import Logger
from trapcont.solver.continuation import ConX
from trapcont.vectorfield import VectorField
from stuart_landau import Stuart_Landau

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

# Problem
prob = Problem()
prob.configure_parameters("parameters.yaml")
prob.set_vector_field(VectorField(Stuart_Landau.F, dF=Stuart_Landau.dF, J=Stuart_Landau.J))

# Update model based on parameters
Stuart_Landau.update_model(prob.parameters)

# Starting point for continuation
start = StartingPoint(prob.parameters)
start.set_starting_function(Stuart_Landau.starting_orbit)
start.get_starting_values()

# Logger to log and store solution
log = Logger(prob.parameters)

# Continuation
con = ConX(prob, start, log)

# Run continuation on problem
con.run()
