import os

import h5py
import numpy as np
import yaml


class Logger:
    def __init__(self, parameters):
        self.parameters = parameters
        self.store_index = 0
        self.linewidth = 14
        self.verbose = parameters["logger"]["verbose"]

        self.solution_data = {
            "U": [],
            "T": [],
            "p": [],
            "tgt": [],
            "beta": [],
            "itercorrect": [],
            "step": [],
            "residual": [],
        }

        # HDF5 file setup, an empty file name keeps the branch in memory only
        name = parameters["logger"]["output_file_name"]
        self.h5_filename = f"{name}.h5" if name else None
        if self.h5_filename:
            self._initialise_h5_file()

        # Screen output tracking
        self._last_header_iter = -1

    def _initialise_h5_file(self):
        """Initialise HDF5 file with the run parameters."""
        if os.path.exists(self.h5_filename):
            os.remove(self.h5_filename)

        with h5py.File(self.h5_filename, "w") as f:
            f.create_dataset("Parameters", data=yaml.dump(self.parameters, sort_keys=False))

    def store(self, **sol_data):
        """Store a branch point in memory and append it to the HDF5 file."""
        self.store_index += 1

        data_mapping = {
            "sol_U": "U",
            "sol_T": "T",
            "sol_p": "p",
            "sol_tgt": "tgt",
            "sol_beta": "beta",
            "sol_itercorrect": "itercorrect",
            "sol_step": "step",
            "sol_residual": "residual",
        }

        for key, value in sol_data.items():
            if key in data_mapping and value is not None:
                self.solution_data[data_mapping[key]].append(value)

        if self.h5_filename:
            self._append_to_h5(sol_data)

    def branch(self):
        """Stored branch as arrays: orbits column-wise, scalars as 1-D arrays."""
        out = {}
        for key, values in self.solution_data.items():
            if not values:
                continue
            if key in ("U", "tgt"):
                out[key] = np.column_stack(values)
            else:
                out[key] = np.array(values)
        return out

    # h5 dataset name, dtype and whether the entry is a vector
    _h5_layout = {
        "sol_U": ("Orbit", np.float64, True),
        "sol_tgt": ("Tangent", np.float64, True),
        "sol_T": ("T", np.float64, False),
        "sol_p": ("Param", np.float64, False),
        "sol_beta": ("beta", np.float64, False),
        "sol_itercorrect": ("itercorrect", np.int32, False),
        "sol_step": ("step", np.float64, False),
        "sol_residual": ("Residual", np.float64, False),
    }

    def _append_to_h5(self, sol_data):
        """Append the current point, creating datasets on first use."""
        current_idx = self.store_index - 1
        with h5py.File(self.h5_filename, "a") as f:
            for key, value in sol_data.items():
                if key not in self._h5_layout or value is None:
                    continue
                name, dtype, is_vector = self._h5_layout[key]
                if is_vector:
                    value = np.asarray(value)
                    if name not in f:
                        f.create_dataset(
                            name,
                            (len(value), current_idx + 1),
                            maxshape=(len(value), None),
                            dtype=dtype,
                        )
                    else:
                        f[name].resize((f[name].shape[0], current_idx + 1))
                    f[name][:, current_idx] = value
                else:
                    if name not in f:
                        f.create_dataset(name, (current_idx + 1,), maxshape=(None,), dtype=dtype)
                    else:
                        f[name].resize((current_idx + 1,))
                    f[name][current_idx] = value

    def screenout(self, **screen_data):
        """Print a row of the continuation table."""
        if not self.verbose:
            return

        columns = {
            "Iter Cont": ("iter", "{}"),
            "Iter Newton": ("correct", "{}"),
            "Residual": ("res", "{:.4e}"),
            "Lin Iter": ("liniter", "{}"),
            "Period": ("period", "{:.6f}"),
            "Param": ("param", "{:.6f}"),
            "Step": ("step", "{:.3e}"),
            "Beta": ("beta", "{:.4f}"),
        }

        row_data = {}
        itercont = screen_data.get("iter", 0)
        itercorr = screen_data.get("correct", 0)

        for col_name, (key, fmt) in columns.items():
            if key in screen_data:
                row_data[col_name] = fmt.format(screen_data[key]).ljust(self.linewidth)
            else:
                row_data[col_name] = " ".ljust(self.linewidth)

        # Print header every 20 continuation iterations
        if itercont % 20 == 0 and itercorr == 0 and itercont != self._last_header_iter:
            print("\n")
            print(*[col.ljust(self.linewidth) for col in columns.keys()], sep="")
            self._print_line("=")
            self._last_header_iter = itercont

        print(*row_data.values(), sep="")

    def _print_line(self, char: str):
        print(char * 8 * self.linewidth)

    def screenline(self, char: str):
        if self.verbose:
            self._print_line(char)
