import copy
from typing import Any, Dict, Union

import numpy as np
import yaml

from .linearsolvers import make_linear_solver
from .periodicorbit.trapezoid import PeriodicOrbitTrapProblem, extract_time_slices


class Problem:
    def __init__(self):
        self.parameters = None
        self.vector_field = None
        self.phi = None
        self.xpi = None

        # Default parameters as instance variables
        self.defaults = {
            "periodic_orbit": {
                "time_slices": 50,
                "linear_algorithm": "bordered_lu",
                "period_fd_step": 1e-9,
                "gamma": 1.0,
                "update_section_every_step": 0,
                "on_device": False,
            },
            "newton": {
                "tolerance": 1e-10,
                "max_iterations": 20,
                "max_residual": 1e10,
                "line_search": False,
                "max_line_search": 10,
            },
            "linear_solver": {
                "method": "direct",
                "tolerance": 1e-10,
                "max_iterations": 500,
                "restart": 200,
                "preconditioner": "none",
            },
            "bordered": {
                "algorithm": "bordering",
                "theta": 0.5,
            },
            "continuation": {
                "method": "pseudo_arclength",
                "tangent_predictor": "bordered",
                "min_parameter_value": 0.0,
                "max_parameter_value": 1.0,
                "direction": 1,
                "num_points": 100,
                "corrections_tolerance": 1e-8,
                "min_iterations": 1,
                "optimal_iterations": 3,
                "max_iterations": 8,
                "adaptive_step_start": 2,
                "initial_step_size": 0.01,
                "min_step_size": 0.0001,
                "max_step_size": 0.1,
                "parameter_fd_step": 1e-7,
            },
            "starting_point": {
                "source": "function",
                "file_info": {
                    "file_name": "",
                    "restart_index": 0,
                    "recompute_tangent": False,
                },
            },
            "logger": {
                "verbose": True,
                "output_file_name": "Sol",
            },
        }

        # Validation schema
        self.schema = {
            "periodic_orbit": {
                "time_slices": {"type": int, "min": 2},
                "linear_algorithm": {
                    "type": str,
                    "choices": [
                        "full_lu",
                        "full_sparse_inplace",
                        "bordered_lu",
                        "full_matrix_free",
                        "bordered_matrix_free",
                    ],
                },
                "period_fd_step": {"type": (int, float), "min": 0},
                "gamma": {"type": (int, float)},
                "update_section_every_step": {"type": int, "min": 0},
                "on_device": bool,
            },
            "newton": {
                "tolerance": {"type": (int, float), "min": 0},
                "max_iterations": {"type": int, "min": 0},
                "max_residual": {"type": (int, float), "min": 0},
                "line_search": bool,
                "max_line_search": {"type": int, "min": 0},
            },
            "linear_solver": {
                "method": {"type": str, "choices": ["direct", "gmres"]},
                "tolerance": {"type": (int, float), "min": 0},
                "max_iterations": {"type": int, "min": 1},
                "restart": {"type": int, "min": 1},
                "preconditioner": {"type": str, "choices": ["none", "block_jacobi"]},
            },
            "bordered": {
                "algorithm": {"type": str, "choices": ["bordering", "full", "full_matrix_free"]},
                "theta": {"type": (int, float), "min": 0, "max": 1},
            },
            "continuation": {
                "method": {"type": str, "choices": ["pseudo_arclength", "sequential"]},
                "tangent_predictor": {"type": str, "choices": ["bordered", "secant"]},
                "min_parameter_value": {"type": (int, float)},
                "max_parameter_value": {"type": (int, float)},
                "direction": {"type": int, "choices": [1, -1]},
                "num_points": {"type": int, "min": 1},
                "corrections_tolerance": {"type": (int, float), "min": 0},
                "min_iterations": {"type": int, "min": 0},
                "optimal_iterations": {"type": int, "min": 1},
                "max_iterations": {"type": int, "min": 1},
                "adaptive_step_start": {"type": int, "min": 0},
                "initial_step_size": {"type": (int, float), "min": 0},
                "min_step_size": {"type": (int, float), "min": 0},
                "max_step_size": {"type": (int, float), "min": 0},
                "parameter_fd_step": {"type": (int, float), "min": 0},
            },
            "starting_point": {
                "source": {"type": str, "choices": ["function", "file"]},
                "file_info": {
                    "file_name": str,
                    "restart_index": {"type": int, "min": 0},
                    "recompute_tangent": bool,
                },
            },
            "logger": {
                "verbose": bool,
                "output_file_name": str,
            },
        }

    def configure_parameters(self, cont_paramfile):
        with open(cont_paramfile) as f:
            data = yaml.safe_load(f)
        self.configure_from_dict(data or {})

    def configure_from_dict(self, data: Dict):
        data = copy.deepcopy(data)
        self._convert_strings_to_floats(data)

        self.parameters = self.fill_defaults(data, copy.deepcopy(self.defaults))
        self.validate_parameters()

    def _convert_strings_to_floats(self, data: Union[Dict, list]):
        """
        Recursively traverse a dictionary or list and convert numeric strings (e.g. "1e-8",
        which YAML does not read as a float) to floats.
        """
        if isinstance(data, dict):
            items = list(data.items())
        elif isinstance(data, list):
            items = list(enumerate(data))
        else:
            return
        for key, value in items:
            if isinstance(value, str):
                try:
                    data[key] = float(value)
                except ValueError:
                    pass  # not a number
            elif isinstance(value, (dict, list)):
                self._convert_strings_to_floats(value)

    def validate_parameters(self):
        """
        Validate parameters using schema-based validation
        """
        self._validate_dict(self.parameters, self.schema, "")
        self._validate_logical_rules()

    def _validate_dict(self, data: Dict, schema: Dict, path: str):
        for key, expected in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key not in data:
                continue  # Missing keys are handled by fill_defaults

            value = data[key]

            if isinstance(expected, dict) and not self._is_validation_spec(expected):
                if not isinstance(value, dict):
                    raise TypeError(f"Parameter section '{current_path}' must be a mapping")
                self._validate_dict(value, expected, current_path)
            else:
                self._validate_parameter(value, expected, current_path)

    def _is_validation_spec(self, spec: Dict) -> bool:
        return "type" in spec or isinstance(spec, type)

    def _validate_parameter(self, value: Any, spec: Union[type, Dict], path: str):
        """
        Validate a single parameter against its schema entry
        """
        if isinstance(spec, type):
            if not isinstance(value, spec):
                raise TypeError(
                    f"Parameter '{path}' must be of type {spec.__name__}, "
                    f"got {type(value).__name__}: {value}"
                )
        elif isinstance(spec, dict):
            expected_type = spec.get("type")

            # Type validation, booleans are not numbers here
            if expected_type:
                if not isinstance(value, expected_type) or (
                    isinstance(value, bool) and expected_type is not bool
                ):
                    type_names = (
                        expected_type.__name__
                        if hasattr(expected_type, "__name__")
                        else str(expected_type)
                    )
                    raise TypeError(
                        f"Parameter '{path}' must be of type {type_names}, "
                        f"got {type(value).__name__}: {value}"
                    )

            # Choice validation
            if "choices" in spec and value not in spec["choices"]:
                raise ValueError(
                    f"Parameter '{path}' must be one of {spec['choices']}, got: {value}"
                )

            # Range validation
            if "min" in spec and value < spec["min"]:
                raise ValueError(f"Parameter '{path}' must be >= {spec['min']}, got: {value}")

            if "max" in spec and value > spec["max"]:
                raise ValueError(f"Parameter '{path}' must be <= {spec['max']}, got: {value}")

    def _validate_logical_rules(self):
        """
        Validate logical consistency rules that depend on multiple parameters
        """
        cont = self.parameters["continuation"]
        po = self.parameters["periodic_orbit"]

        # Rule 1: Iteration consistency
        if cont["min_iterations"] >= cont["max_iterations"]:
            raise ValueError(
                f"continuation.min_iterations ({cont['min_iterations']}) must be less than "
                f"max_iterations ({cont['max_iterations']})"
            )

        if cont["optimal_iterations"] > cont["max_iterations"]:
            raise ValueError(
                f"continuation.optimal_iterations ({cont['optimal_iterations']}) must be <= "
                f"max_iterations ({cont['max_iterations']})"
            )

        # Rule 2: Step size consistency
        if cont["min_step_size"] >= cont["max_step_size"]:
            raise ValueError(
                f"continuation.min_step_size ({cont['min_step_size']}) must be less than "
                f"max_step_size ({cont['max_step_size']})"
            )

        if not (cont["min_step_size"] <= cont["initial_step_size"] <= cont["max_step_size"]):
            raise ValueError(
                f"continuation.initial_step_size ({cont['initial_step_size']}) must be between "
                f"min_step_size ({cont['min_step_size']}) and max_step_size "
                f"({cont['max_step_size']})"
            )

        # Rule 3: Parameter bounds consistency
        if cont["min_parameter_value"] >= cont["max_parameter_value"]:
            raise ValueError(
                f"continuation.min_parameter_value ({cont['min_parameter_value']}) must be less "
                f"than max_parameter_value ({cont['max_parameter_value']})"
            )

        # Rule 4: Matrix-free algorithms need an iterative linear solver
        matrix_free = po["linear_algorithm"] in ("full_matrix_free", "bordered_matrix_free")
        if matrix_free and self.parameters["linear_solver"]["method"] == "direct":
            raise ValueError(
                f"periodic_orbit.linear_algorithm '{po['linear_algorithm']}' requires "
                "linear_solver.method 'gmres'"
            )

        # Rule 5: The block-Jacobi preconditioner acts on the cyclic matrix of the bordered solve
        if (
            self.parameters["linear_solver"]["preconditioner"] == "block_jacobi"
            and po["linear_algorithm"] != "bordered_matrix_free"
        ):
            raise ValueError(
                "linear_solver.preconditioner 'block_jacobi' requires "
                "periodic_orbit.linear_algorithm 'bordered_matrix_free'"
            )

        # Rule 6: The matrix-free augmented system is handed to the periodic orbit solver
        if (
            self.parameters["bordered"]["algorithm"] == "full_matrix_free"
            and po["linear_algorithm"] != "full_matrix_free"
        ):
            raise ValueError(
                "bordered.algorithm 'full_matrix_free' requires periodic_orbit.linear_algorithm "
                "'full_matrix_free'"
            )

        # Rule 7: Restart file
        start = self.parameters["starting_point"]
        if start["source"] == "file" and not start["file_info"]["file_name"]:
            raise ValueError("starting_point.file_info.file_name is required when source is 'file'")

    def fill_defaults(self, data: Dict, defaults: Dict) -> Dict:
        """
        Fill missing parameters with default values
        """
        result = data.copy()
        for key, value in defaults.items():
            if key not in result:
                result[key] = value
            elif isinstance(value, dict) and isinstance(result[key], dict):
                result[key] = self.fill_defaults(result[key], value)
        return result

    def set_vector_field(self, vf):
        self.vector_field = vf

    def set_section(self, phi, xpi):
        self.phi = np.array(phi, dtype=np.float64)
        self.xpi = np.array(xpi, dtype=np.float64)

    def periodic_orbit_problem(self, par, orbitguess=None):
        """
        Periodic orbit problem at parameter value ``par``.

        Without an explicit section the phase condition is centred on the first slice of
        ``orbitguess``.
        """
        if self.parameters is None or self.vector_field is None:
            raise RuntimeError("Parameters and vector field must be set before building a problem.")
        po = self.parameters["periodic_orbit"]
        M = po["time_slices"]

        if self.phi is not None:
            phi, xpi = self.phi, self.xpi
        elif orbitguess is not None:
            N, rem = divmod(len(orbitguess) - 1, M)
            if rem:
                raise ValueError(
                    f"Orbit guess of length {len(orbitguess)} is not compatible with "
                    f"{M} time slices"
                )
            xpi = extract_time_slices(np.asarray(orbitguess, dtype=np.float64), N, M)[0]
            phi = self.vector_field.residual(xpi, par)
        else:
            raise ValueError("A section (phi, xpi) or an orbit guess is needed.")

        return PeriodicOrbitTrapProblem(
            self.vector_field,
            par,
            phi,
            xpi,
            M,
            make_linear_solver(self.parameters),
            on_device=po["on_device"],
            delta=po["period_fd_step"],
        )
