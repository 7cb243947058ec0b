"""
Deflation of known solutions for Newton-Raphson.

The residual G is replaced by M(x) G(x) with

    M(x) = prod_k (1 / d(x, x_k)**power + shift),   d(x, y) = dot(x - y, x - y)

so the roots x_k stop attracting the iterations. The Newton step of the deflated residual is
obtained from the undeflated one z = J^-1 G through the Sherman-Morrison formula.
"""

import numpy as np


class DeflationOperator:
    """
    Deflation operator M(x) built on a list of known roots.

    Args:
        power: exponent of the distance to each root.
        shift: added to each factor so that M tends to a constant away from the roots.
        roots: known solutions to deflate.
        dot: inner product defining the distance, e.g. one that leaves out the period of an
            orbit vector.
    """

    def __init__(self, power=2, shift=1.0, roots=(), dot=np.dot):
        if power <= 0:
            raise ValueError(f"Deflation power must be positive, got: {power}")
        if shift < 0:
            raise ValueError(f"Deflation shift must be non-negative, got: {shift}")
        self.power = power
        self.shift = shift
        self.dot = dot
        self.roots = []
        for root in roots:
            self.add_root(root)

    def __len__(self):
        return len(self.roots)

    def add_root(self, root):
        self.roots.append(np.array(root, dtype=np.float64))

    def _distances(self, x):
        return [self.dot(x - root, x - root) for root in self.roots]

    def __call__(self, x):
        value = 1.0
        for dist in self._distances(x):
            value *= dist ** -self.power + self.shift
        return value

    def directional_derivative(self, x, dx):
        """Derivative of M at x in the direction dx."""
        value = self(x)
        total = 0.0
        for root, dist in zip(self.roots, self._distances(x)):
            factor = dist ** -self.power + self.shift
            dfactor = -self.power * dist ** (-self.power - 1) * 2 * self.dot(x - root, dx)
            total += dfactor / factor
        return value * total

    def deflate_step(self, x, z):
        """
        Newton step of the deflated residual from the undeflated step z = J^-1 G.

        (M J + G dM^T)^-1 M G = z / (1 + dM.z / M)
        """
        if not self.roots:
            return z
        ratio = self.directional_derivative(x, z) / self(x)
        return z / (1 + ratio)
