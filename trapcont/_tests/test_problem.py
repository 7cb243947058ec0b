import numpy as np
import pytest

from trapcont.linearsolvers import DirectSolver, GMRESSolver
from trapcont.problem import Problem
from trapcont.vectorfield import VectorField


def _configured(data=None):
    prob = Problem()
    prob.configure_from_dict(data or {})
    return prob


def test_defaults_are_filled():
    prob = _configured({"continuation": {"num_points": 7}})
    params = prob.parameters

    assert params["continuation"]["num_points"] == 7
    assert params["continuation"]["method"] == "pseudo_arclength"
    assert params["periodic_orbit"]["linear_algorithm"] == "bordered_lu"
    assert params["bordered"]["theta"] == 0.5
    assert params["starting_point"]["file_info"]["restart_index"] == 0

    # defaults are not shared between problems
    params["newton"]["tolerance"] = 1.0
    assert Problem().defaults["newton"]["tolerance"] != 1.0
    assert _configured().parameters["newton"]["tolerance"] != 1.0


def test_yaml_file_with_scientific_notation(tmp_path):
    paramfile = tmp_path / "parameters.yaml"
    paramfile.write_text(
        "periodic_orbit:\n"
        "  time_slices: 25\n"
        "  period_fd_step: 1e-7\n"
        "linear_solver:\n"
        "  method: gmres\n"
        "  tolerance: 1e-9\n"
        "logger:\n"
        "  output_file_name: branch\n"
    )
    prob = Problem()
    prob.configure_parameters(str(paramfile))

    assert prob.parameters["periodic_orbit"]["time_slices"] == 25
    assert prob.parameters["periodic_orbit"]["period_fd_step"] == 1e-7
    assert prob.parameters["linear_solver"]["tolerance"] == 1e-9
    assert prob.parameters["logger"]["output_file_name"] == "branch"


@pytest.mark.parametrize(
    "data, error",
    [
        ({"periodic_orbit": {"time_slices": 1}}, ValueError),
        ({"periodic_orbit": {"time_slices": 2.5}}, TypeError),
        ({"periodic_orbit": {"linear_algorithm": "dense"}}, ValueError),
        ({"periodic_orbit": {"on_device": 1}}, TypeError),
        ({"newton": {"max_iterations": True}}, TypeError),
        ({"bordered": {"theta": 1.5}}, ValueError),
        ({"continuation": {"direction": 0}}, ValueError),
        ({"continuation": "fast"}, TypeError),
        ({"continuation": {"min_iterations": 8, "max_iterations": 8}}, ValueError),
        ({"continuation": {"optimal_iterations": 9, "max_iterations": 8}}, ValueError),
        ({"continuation": {"min_step_size": 0.2, "max_step_size": 0.1}}, ValueError),
        ({"continuation": {"initial_step_size": 1.0}}, ValueError),
        ({"continuation": {"min_parameter_value": 2.0, "max_parameter_value": 1.0}}, ValueError),
        ({"periodic_orbit": {"linear_algorithm": "bordered_matrix_free"}}, ValueError),
        ({"bordered": {"algorithm": "full_matrix_free"}}, ValueError),
        ({"linear_solver": {"preconditioner": "block_jacobi"}}, ValueError),
        ({"linear_solver": {"preconditioner": "ilu"}}, ValueError),
        ({"starting_point": {"source": "file"}}, ValueError),
    ],
)
def test_invalid_parameters(data, error):
    with pytest.raises(error):
        _configured(data)


def test_matrix_free_configuration_is_accepted():
    prob = _configured(
        {
            "periodic_orbit": {"linear_algorithm": "full_matrix_free"},
            "linear_solver": {"method": "gmres"},
            "bordered": {"algorithm": "full_matrix_free"},
        }
    )
    assert prob.parameters["bordered"]["algorithm"] == "full_matrix_free"

    prob = _configured(
        {
            "periodic_orbit": {"linear_algorithm": "bordered_matrix_free"},
            "linear_solver": {"method": "gmres", "preconditioner": "block_jacobi"},
        }
    )
    assert prob.parameters["linear_solver"]["preconditioner"] == "block_jacobi"


def _F(x, p):
    return np.array([p * x[1], -p * x[0]])


def test_periodic_orbit_problem_from_configuration():
    prob = _configured({"periodic_orbit": {"time_slices": 5, "period_fd_step": 1e-6}})
    prob.set_vector_field(VectorField(_F))
    u = np.append(np.tile([1.0, 0.5], 5), 6.0)

    pb = prob.periodic_orbit_problem(2.0, u)
    assert (pb.N, pb.M, pb.par, pb.delta) == (2, 5, 2.0, 1e-6)
    assert isinstance(pb.linsolver, DirectSolver)
    # section centred on the first slice
    assert np.allclose(pb.xpi, [1.0, 0.5])
    assert np.allclose(pb.phi, _F(np.array([1.0, 0.5]), 2.0))

    prob.set_section([0.0, 1.0], [1.0, 0.0])
    pb = prob.periodic_orbit_problem(2.0)
    assert np.allclose(pb.phi, [0.0, 1.0])

    with pytest.raises(ValueError):
        _configured_with_field().periodic_orbit_problem(1.0, u[:-2])


def _configured_with_field():
    prob = _configured({"periodic_orbit": {"time_slices": 5}})
    prob.set_vector_field(VectorField(_F))
    return prob


def test_problem_needs_configuration_and_vector_field():
    with pytest.raises(RuntimeError):
        Problem().periodic_orbit_problem(1.0)
    with pytest.raises(ValueError):
        _configured_with_field().periodic_orbit_problem(1.0)


def test_gmres_configuration_reaches_problem():
    prob = _configured({"linear_solver": {"method": "gmres", "restart": 30}})
    prob.set_vector_field(VectorField(_F))
    pb = prob.periodic_orbit_problem(1.0, np.append(np.ones(2 * 50), 6.0))
    assert isinstance(pb.linsolver, GMRESSolver)
    assert pb.linsolver.restart == 30
