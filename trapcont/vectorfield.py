import numpy as np


class VectorField:
    """
    Oracle for the vector field F(x, p) and its derivatives.

    Only F is mandatory. The directional derivative dF(x, p, dx) is taken from, in order of
    preference, the user callback, the Jacobian matrix J(x, p), or a forward difference of F.
    The Jacobian matrix is built column by column from dF when it is not supplied.

    Args:
        F: vector field, ``F(x, p)`` or ``F(out, x, p)`` when ``isinplace``.
        dF: Jacobian apply, ``dF(x, p, dx)`` or ``dF(out, x, p, dx)`` when ``isinplace``.
        J: Jacobian matrix, ``J(x, p)`` returning a dense or scipy.sparse (N x N) matrix.
        d2F: Hessian apply, ``d2F(x, p, dx1, dx2)``.
        isinplace: whether F and dF write into their first argument.
        fd_step: step used by the finite-difference fallbacks.
    """

    def __init__(self, F, dF=None, J=None, d2F=None, isinplace=False, fd_step=1e-8):
        if not callable(F):
            raise TypeError("Vector field F must be callable.")
        self.F = F
        self.dF = dF
        self.J = J
        self.d2F = d2F
        self.isinplace = isinplace
        self.fd_step = fd_step

    @property
    def has_hessian(self):
        return self.d2F is not None

    def residual(self, x, p, out=None):
        if out is None:
            out = np.empty_like(x)
        if self.isinplace:
            self.F(out, x, p)
        else:
            out[:] = self.F(x, p)
        return out

    def apply_jacobian(self, x, p, dx, out=None):
        if out is None:
            out = np.empty_like(dx)
        if self.dF is not None:
            if self.isinplace:
                self.dF(out, x, p, dx)
            else:
                out[:] = self.dF(x, p, dx)
        elif self.J is not None:
            out[:] = self.J(x, p) @ dx
        else:
            # forward difference of F along dx
            eps = self.fd_step
            f0 = self.residual(x, p)
            f1 = self.residual(x + eps * dx, p)
            out[:] = (f1 - f0) / eps
        return out

    def jacobian(self, x, p):
        """Jacobian matrix of F at (x, p), built from the directional derivative if needed."""
        if self.J is not None:
            return self.J(x, p)
        n = len(x)
        jac = np.zeros((n, n))
        e = np.zeros(n)
        for k in range(n):
            e[k] = 1.0
            self.apply_jacobian(x, p, e, out=jac[:, k])
            e[k] = 0.0
        return jac

    def apply_hessian(self, x, p, dx1, dx2):
        if self.d2F is not None:
            return self.d2F(x, p, dx1, dx2)
        eps = self.fd_step
        return (self.apply_jacobian(x + eps * dx2, p, dx1) - self.apply_jacobian(x, p, dx1)) / eps

