import numpy as np

from trapcont.periodicorbit.trapezoid import orbit_guess_from_function


class Harmonic_Oscillator:
    # x' = p y,  y' = -p x    circles of any radius, angular frequency p
    time_slices = 20
    p = 1.3

    @classmethod
    def update_model(cls, parameters):
        cls.time_slices = parameters["periodic_orbit"]["time_slices"]

    @classmethod
    def F(cls, x, p):
        return p * np.array([x[1], -x[0]])

    @classmethod
    def J(cls, x, p):
        return p * np.array([[0.0, 1.0], [-1.0, 0.0]])

    @classmethod
    def section(cls):
        # x_0[0] = 1
        return np.array([1.0, 0.0]), np.array([1.0, 0.0])

    @classmethod
    def orbit(cls, phase, period_error=0.01):
        T = 2 * np.pi / cls.p
        u0 = orbit_guess_from_function(
            lambda t: np.array([np.cos(cls.p * t + phase), -np.sin(cls.p * t + phase)]),
            T,
            cls.time_slices,
        )
        u0[-1] *= 1 + period_error
        return u0

    @classmethod
    def discrete_period(cls):
        # M - 1 trapezoidal steps of length T / M close the circle
        M = cls.time_slices
        return 2 * M / cls.p * np.tan(np.pi / (M - 1))
