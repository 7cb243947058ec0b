"""
Periodic orbit functional based on a trapezoidal time discretisation.

An orbit is stored as a flat vector u of length N * M + 1 holding M time slices of the
N-dimensional state followed by the period T. With h = T / M the functional G reads

    (x_i - x_{i-1}) - h / 2 * (F(x_i) + F(x_{i-1})),   i = 0 .. M-2, with x_{-1} := x_{M-2}
    x_{M-1} - x_0                                        (closure)
    <x_0 - xpi, phi>                                     (phase condition)
"""

from enum import Enum

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from ..linearsolvers import DirectSolver
from ._assembly import TripletAssembler


class JacobianKind(Enum):
    FULL_SPARSE = "full_sparse"
    FULL_SPARSE_INPLACE = "full_sparse_inplace"
    CYCLIC_SPARSE = "cyclic_sparse"
    BLOCK_DIAG_SPARSE = "block_diag_sparse"


def extract_period(u):
    return u[-1]


def extract_time_slices(u, N, M):
    # row i is slice i, a view into u
    return u[:-1].reshape(M, N)


def orbit_guess(slices, T):
    """Flatten an (M, N) array of time slices and a period into an orbit vector."""
    slices = np.asarray(slices, dtype=np.float64)
    if slices.ndim != 2:
        raise ValueError(f"Time slices must be an (M, N) array, got shape {slices.shape}")
    if not T > 0:
        raise ValueError(f"Period must be positive, got: {T}")
    return np.append(slices.ravel(), T)


def orbit_guess_from_function(x_of_t, T, M):
    """Sample a closed curve t -> x(t) on M slices over [0, T]."""
    t = np.linspace(0.0, T, M)
    return orbit_guess(np.array([x_of_t(ti) for ti in t]), T)


class PeriodicOrbitTrapProblem:
    """
    Trapezoidal periodic orbit problem for dx/dt = F(x, p) at a fixed parameter value.

    Args:
        vf: :class:`~trapcont.vectorfield.VectorField` oracle.
        par: parameter value passed to the vector field.
        phi, xpi: vectors of length N defining the section <x_0 - xpi, phi> = 0.
        M: number of time slices (>= 2).
        linsolver: default linear solver of the matrix-free cyclic operator.
        on_device: avoid scalar indexed writes into orbit vectors.
        delta: finite-difference step for the derivative with respect to the period.
    """

    def __init__(self, vf, par, phi, xpi, M, linsolver=None, *, on_device=False, delta=1e-9):
        phi = np.array(phi, dtype=np.float64)
        xpi = np.array(xpi, dtype=np.float64)
        if int(M) != M or M < 2:
            raise ValueError(f"Number of time slices M must be an integer >= 2, got: {M}")
        if phi.ndim != 1 or xpi.shape != phi.shape:
            raise ValueError(
                f"Section vectors phi and xpi must be 1-D of the same length, got shapes "
                f"{phi.shape} and {xpi.shape}"
            )
        self.vf = vf
        self.par = par
        self.phi = phi
        self.xpi = xpi
        self.M = int(M)
        self.N = len(phi)
        self.linsolver = DirectSolver() if linsolver is None else linsolver
        self.on_device = on_device
        self.delta = delta

    @property
    def isinplace(self):
        return self.vf.isinplace

    @property
    def size(self):
        return self.N * self.M + 1

    def with_parameter(self, par):
        """Same problem at another parameter value."""
        return PeriodicOrbitTrapProblem(
            self.vf,
            par,
            self.phi.copy(),
            self.xpi.copy(),
            self.M,
            self.linsolver,
            on_device=self.on_device,
            delta=self.delta,
        )

    def update_section(self, u):
        """Re-centre the phase condition on the first slice of u."""
        u = self._check_orbit(u)
        x0 = extract_time_slices(u, self.N, self.M)[0]
        self.xpi = x0.copy()
        self.phi = self.vf.residual(x0, self.par)

    def _check_orbit(self, u, name="orbit"):
        u = np.asarray(u, dtype=np.float64)
        if np.ndim(u) != 1 or len(u) != self.size:
            raise ValueError(
                f"{name} must be a vector of length N * M + 1 = {self.size}, "
                f"got shape {np.shape(u)}"
            )
        return u

    def _apply_F(self, dest, x):
        self.vf.residual(x, self.par, out=dest)
        return dest

    def _apply_J(self, dest, x, dx):
        self.vf.apply_jacobian(x, self.par, dx, out=dest)
        return dest

    def _set_phase(self, out, phase):
        if self.on_device:
            return np.concatenate((out[:-1], np.atleast_1d(phase)))
        out[-1] = phase
        return out

    def _scheme(self, dest, u1, u2, h, tmp, linear=True):
        # tmp holds F(u2) on entry and F(u1) on exit, so F is evaluated once per slice
        if linear:
            dest[:] = tmp
            self._apply_F(tmp, u1)
            dest[:] = u1 - u2 - h * (dest + tmp)
        else:
            dest -= h * tmp
            self._apply_F(tmp, u1)
            dest -= h * tmp

    def _scheme_jac(self, dest, u1, u2, du1, du2, h, tmp):
        # same threading as _scheme with tmp = dF(u2).du2
        dest[:] = tmp
        self._apply_J(tmp, u1, du1)
        dest[:] = du1 - du2 - h * (dest + tmp)

    def _jc(self, outc, uc, duc, h, tmp):
        M = self.M
        self._apply_J(tmp, uc[M - 2], duc[M - 2])
        self._scheme_jac(outc[0], uc[0], uc[M - 2], duc[0], duc[M - 2], h / 2, tmp)
        for ii in range(1, M - 1):
            self._scheme_jac(outc[ii], uc[ii], uc[ii - 1], duc[ii], duc[ii - 1], h / 2, tmp)

    def evaluate(self, u):
        """Periodic orbit functional G(u)."""
        u = self._check_orbit(u)
        M, N = self.M, self.N
        h = extract_period(u) / M

        uc = extract_time_slices(u, N, M)
        out = np.empty(self.size)
        outc = extract_time_slices(out, N, M)

        # outc[M-1] is scratch space until the closure is written
        tmp = outc[M - 1]
        self._apply_F(tmp, uc[M - 2])
        self._scheme(outc[0], uc[0], uc[M - 2], h / 2, tmp)
        for ii in range(1, M - 1):
            self._scheme(outc[ii], uc[ii], uc[ii - 1], h / 2, tmp)

        # closure condition ensuring a periodic orbit
        outc[M - 1] = uc[M - 1] - uc[0]

        phase = np.dot(uc[0], self.phi) - np.dot(self.xpi, self.phi)
        return self._set_phase(out, phase)

    def directional_derivative(self, u, du):
        """Jacobian of G at u applied to du, without assembling it."""
        u = self._check_orbit(u)
        du = self._check_orbit(du, "direction")
        M, N = self.M, self.N
        h = extract_period(u) / M
        dT = extract_period(du)

        uc = extract_time_slices(u, N, M)
        duc = extract_time_slices(du, N, M)
        out = np.empty(self.size)
        outc = extract_time_slices(out, N, M)
        tmp = outc[M - 1]

        self._jc(outc, uc, duc, h, tmp)

        # derivative with respect to the period
        self._apply_F(tmp, uc[M - 2])
        self._scheme(outc[0], uc[0], uc[M - 2], dT / (2 * M), tmp, linear=False)
        for ii in range(1, M - 1):
            self._scheme(outc[ii], uc[ii], uc[ii - 1], dT / (2 * M), tmp, linear=False)

        outc[M - 1] = duc[M - 1] - duc[0]

        return self._set_phase(out, np.dot(duc[0], self.phi))

    def __call__(self, u, du=None):
        if du is None:
            return self.evaluate(u)
        return self.directional_derivative(u, du)

    def cyclic_matvec(self, u, dx):
        """Cyclic matrix Jc at u applied to dx of length N * (M - 1)."""
        u = self._check_orbit(u)
        M, N = self.M, self.N
        if len(dx) != N * (M - 1):
            raise ValueError(f"Cyclic direction must have length {N * (M - 1)}, got {len(dx)}")
        h = extract_period(u) / M
        out = np.empty(N * (M - 1))
        self._jc(
            out.reshape(M - 1, N),
            extract_time_slices(u, N, M),
            np.reshape(dx, (M - 1, N)),
            h,
            np.empty(N),
        )
        return out

    def agamma_matvec(self, u, dx, gamma=1.0):
        """Operator A_gamma (cyclic part plus closure dx_{M-1} - gamma dx_0) applied to dx."""
        u = self._check_orbit(u)
        M, N = self.M, self.N
        if len(dx) != N * M:
            raise ValueError(f"A_gamma direction must have length {N * M}, got {len(dx)}")
        h = extract_period(u) / M
        out = np.empty(N * M)
        outc = out.reshape(M, N)
        duc = np.reshape(dx, (M, N))
        self._jc(outc, extract_time_slices(u, N, M), duc, h, outc[M - 1])
        outc[M - 1] = duc[M - 1] - gamma * duc[0]
        return out

    def period_derivative(self, u, delta=None):
        """Forward difference of G with respect to the period."""
        delta = self.delta if delta is None else delta
        u = self._check_orbit(u)
        u_shift = np.concatenate((u[:-1], u[-1:] + delta))
        return (self.evaluate(u_shift) - self.evaluate(u)) / delta

    def _cyclic_assembler(self, u, gamma=1.0, closure=True):
        M, N = self.M, self.N
        h = extract_period(u) / M
        uc = extract_time_slices(u, N, M)
        jacs = [self.vf.jacobian(uc[ii], self.par) for ii in range(M - 1)]

        asm = TripletAssembler()
        for ii in range(M - 1):
            jj = ii - 1 if ii > 0 else M - 2
            asm.add_identity(N, ii * N, ii * N)
            asm.add(jacs[ii], ii * N, ii * N, scale=-h / 2)
            asm.add_identity(N, ii * N, jj * N, scale=-1.0)
            asm.add(jacs[jj], ii * N, jj * N, scale=-h / 2)

        if closure:
            asm.add_identity(N, (M - 1) * N, 0, scale=-gamma)
            asm.add_identity(N, (M - 1) * N, (M - 1) * N)
        return asm

    def _full_assembler(self, u, gamma, delta):
        M, N = self.M, self.N
        asm = self._cyclic_assembler(u, gamma)
        dTG = self.period_derivative(u, delta)
        asm.add(dTG.reshape(-1, 1), 0, N * M)
        asm.add(self.phi.reshape(1, -1), N * M, 0)
        return asm

    def jacobian(self, kind, u, J0=None, gamma=1.0, delta=None):
        """
        Sparse Jacobian of G at u.

        Args:
            kind: a :class:`JacobianKind` (or its string value).
            u: orbit vector.
            J0: preallocated CSR matrix, required by ``FULL_SPARSE_INPLACE``.
            gamma: closure coefficient of A_gamma.
            delta: finite-difference step for the period derivative.
        """
        try:
            kind = JacobianKind(kind)
        except ValueError:
            raise ValueError(f"Unsupported Jacobian materialisation: {kind}") from None
        u = self._check_orbit(u)
        M, N = self.M, self.N
        n = N * M + 1

        if kind == JacobianKind.FULL_SPARSE:
            return self._full_assembler(u, gamma, delta).tocsr((n, n))
        elif kind == JacobianKind.FULL_SPARSE_INPLACE:
            if J0 is None:
                raise ValueError("In-place Jacobian update needs the preallocated matrix J0.")
            return self._full_assembler(u, gamma, delta).write_into(J0, (n, n))
        elif kind == JacobianKind.CYCLIC_SPARSE:
            nc = N * (M - 1)
            return self._cyclic_assembler(u, closure=False).tocsr((nc, nc))
        elif kind == JacobianKind.BLOCK_DIAG_SPARSE:
            return sp.block_diag(self._diagonal_blocks(u), format="csr")

    def _diagonal_blocks(self, u):
        M, N = self.M, self.N
        h = extract_period(u) / M
        uc = extract_time_slices(u, N, M)
        blocks = []
        for ii in range(M - 1):
            asm = TripletAssembler()
            asm.add_identity(N, 0, 0)
            asm.add(self.vf.jacobian(uc[ii], self.par), 0, 0, scale=-h / 2)
            blocks.append(asm.tocsr((N, N)))
        blocks.append(sp.identity(N, format="csr"))
        return blocks

    def block_jacobi(self, u, cyclic=False):
        """
        Inverse of the block diagonal of A_gamma as a LinearOperator (preconditioner).

        With ``cyclic`` the operator acts on the N * (M - 1) unknowns of the cyclic matrix Jc
        and the closure block is dropped.
        """
        u = self._check_orbit(u)
        M, N = self.M, self.N
        lus = [spla.splu(sp.csc_matrix(b)) for b in self._diagonal_blocks(u)[:-1]]

        nb = M - 1 if cyclic else M

        def matvec(r):
            rc = np.reshape(r, (nb, N))
            out = np.empty((nb, N))
            for ii in range(M - 1):
                out[ii] = lus[ii].solve(rc[ii])
            if not cyclic:
                out[M - 1] = rc[M - 1]
            return out.ravel()

        return spla.LinearOperator((N * nb, N * nb), matvec=matvec, dtype=np.float64)
