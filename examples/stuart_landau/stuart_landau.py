import numpy as np

from trapcont.periodicorbit.trapezoid import orbit_guess_from_function


class Stuart_Landau:
    # normal form of the Hopf bifurcation    z' = (p + i) z - |z|^2 z,   z = x + i y
    # periodic orbits: circles of radius sqrt(p) for p > 0
    time_slices = 40
    p0 = 1.0

    @classmethod
    def update_model(cls, parameters):
        cls.time_slices = parameters["periodic_orbit"]["time_slices"]
        cls.p0 = parameters["continuation"]["min_parameter_value"] + 0.1

    @classmethod
    def F(cls, x, p):
        r2 = x[0] ** 2 + x[1] ** 2
        return np.array([p * x[0] - x[1] - r2 * x[0], x[0] + p * x[1] - r2 * x[1]])

    @classmethod
    def dF(cls, x, p, dx):
        return cls.J(x, p) @ dx

    @classmethod
    def J(cls, x, p):
        r2 = x[0] ** 2 + x[1] ** 2
        return np.array(
            [
                [p - r2 - 2 * x[0] ** 2, -1 - 2 * x[0] * x[1]],
                [1 - 2 * x[0] * x[1], p - r2 - 2 * x[1] ** 2],
            ]
        )

    @classmethod
    def starting_orbit(cls):
        # circle of radius sqrt(p0), slightly off, period of the linearisation
        r = 0.9 * np.sqrt(cls.p0)
        T = 2 * np.pi
        u0 = orbit_guess_from_function(
            lambda t: r * np.array([np.cos(2 * np.pi * t / T), np.sin(2 * np.pi * t / T)]),
            T,
            cls.time_slices,
        )
        return u0, cls.p0
