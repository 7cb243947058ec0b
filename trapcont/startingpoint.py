import h5py
import numpy as np


class StartingPoint:
    def __init__(self, parameters):
        self.parameters = parameters
        self.starting_function = None
        self.U0 = None
        self.p0 = None
        self.tgt0 = None

    def set_starting_function(self, fxn):
        """fxn() returns (orbitguess, p0)."""
        self.starting_function = fxn

    def get_starting_values(self):
        if self.parameters["starting_point"]["source"] == "function":
            self.starting_values_from_function()
        elif self.parameters["starting_point"]["source"] == "file":
            self.starting_values_from_file()

    def starting_values_from_function(self):
        if self.starting_function is None:
            raise RuntimeError("Starting function not set.")
        U0, p0 = self.starting_function()
        self.U0 = np.array(U0, dtype=np.float64)
        self.p0 = float(p0)

    def starting_values_from_file(self):
        file_info = self.parameters["starting_point"]["file_info"]
        index = file_info["restart_index"]

        with h5py.File(file_info["file_name"] + ".h5", "r") as file_data:
            npoints = file_data["/Orbit"].shape[1]
            if index >= npoints:
                raise ValueError(
                    f"restart_index {index} out of range, file holds {npoints} solutions"
                )
            self.U0 = file_data["/Orbit"][:, index]
            self.p0 = float(file_data["/Param"][index])

            if "/Tangent" in file_data and not file_info["recompute_tangent"]:
                self.tgt0 = file_data["/Tangent"][:, index]
            else:
                self.tgt0 = None
