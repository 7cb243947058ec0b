import numpy as np
import pytest
import scipy.sparse.linalg as spla

from trapcont.bordered import BorderingSolver
from trapcont.linearsolvers import GMRESSolver
from trapcont.periodicorbit.cyclic import CyclicOperator, CyclicSolver
from trapcont.periodicorbit.jacobian import PeriodicOrbitBorderedJacobian, PeriodicOrbitBorderedLS
from trapcont.periodicorbit.newton import newton_periodic_orbit
from trapcont.periodicorbit.trapezoid import (
    JacobianKind,
    PeriodicOrbitTrapProblem,
    orbit_guess_from_function,
)
from trapcont.solver.newton import NewtonOptions
from trapcont.vectorfield import VectorField


def _vdp(mu=0.4):
    def F(x, p):
        return np.array([x[1], -x[0] + mu * (1 - x[0] ** 2) * x[1]])

    def J(x, p):
        return np.array([[0.0, 1.0], [-1.0 - 2 * mu * x[0] * x[1], mu * (1 - x[0] ** 2)]])

    return VectorField(F, J=J)


def _setup(M=10, seed=0):
    pb = PeriodicOrbitTrapProblem(_vdp(), 0.0, [0.0, -2.0], [2.0, 0.0], M)
    u = orbit_guess_from_function(lambda t: 2 * np.array([np.cos(t), -np.sin(t)]), 2 * np.pi, M)
    u[:-1] += 0.05 * np.random.default_rng(seed).standard_normal(len(u) - 1)
    u[-1] = 6.5
    return pb, u


def test_matrix_mode_inverts_agamma():
    pb, u = _setup()
    rhs = np.random.default_rng(1).standard_normal(pb.N * pb.M)

    for gamma in (1.0, 0.5):
        A = CyclicOperator(pb.N, pb.M, gamma=gamma).update(pb, u)
        x, converged, it = CyclicSolver()(A, rhs)
        assert converged
        assert it == 1
        assert np.allclose(pb.agamma_matvec(u, x, gamma), rhs)
        assert np.allclose(A.matvec(x), rhs)


def test_matrix_free_mode_agrees_with_matrix_mode():
    pb, u = _setup()
    rhs = np.random.default_rng(2).standard_normal(pb.N * pb.M)

    A = CyclicOperator(pb.N, pb.M).update(pb, u)
    Amf = CyclicOperator(pb.N, pb.M, matrix_free=True).update(pb, u)
    x, _, _ = A.apply_inverse(rhs)
    xmf, converged, it = CyclicSolver(GMRESSolver(tol=1e-13))(Amf, rhs)

    assert converged
    assert it > 1
    assert Amf.Jc is None
    assert np.allclose(x, xmf, atol=1e-8)


def test_factorisation_is_refreshed_on_update():
    pb, u1 = _setup(seed=0)
    _, u2 = _setup(seed=5)
    rhs = np.ones(pb.N * pb.M)

    A = CyclicOperator(pb.N, pb.M).update(pb, u1)
    A.apply_inverse(rhs)
    lu1 = A.factorization()
    A.update(pb, u2)
    assert A.factorization() is not lu1

    x, _, _ = A.apply_inverse(rhs)
    assert np.allclose(pb.agamma_matvec(u2, x), rhs)
    assert isinstance(A.factorization(), spla.SuperLU)


def test_structural_errors():
    pb, u = _setup()
    A = CyclicOperator(pb.N, pb.M)
    with pytest.raises(RuntimeError):
        A.apply_inverse(np.ones(pb.N * pb.M))
    with pytest.raises(RuntimeError):
        A.factorization()

    with pytest.raises(ValueError):
        CyclicOperator(pb.N, pb.M + 1).update(pb, u)

    A.update(pb, u)
    with pytest.raises(ValueError):
        A.apply_inverse(np.ones(3))


def test_singular_cyclic_matrix_reports_failure(caplog):
    # zero period: the cyclic part reduces to a circulant difference matrix
    pb, u = _setup()
    u[-1] = 0.0
    A = CyclicOperator(pb.N, pb.M).update(pb, u)
    x, converged, _ = A.apply_inverse(np.ones(pb.N * pb.M))

    assert not converged
    assert "A_gamma" in caplog.text or "failed" in caplog.text


def test_singular_cyclic_matrix_fails_the_bordered_solve():
    pb, u = _setup()
    u[-1] = 0.0
    rhs = np.ones(pb.size)
    jac = PeriodicOrbitBorderedJacobian(pb, CyclicOperator(pb.N, pb.M)).update(u)

    x, converged, _ = jac.solve(rhs)
    assert not converged
    assert not np.all(np.isfinite(x))

    x, converged, _ = PeriodicOrbitBorderedLS()(jac, rhs)
    assert not converged


def test_newton_stops_on_singular_cyclic_matrix():
    pb, u = _setup()
    u[-1] = 0.0
    result = newton_periodic_orbit(pb, u, NewtonOptions(), "bordered_lu")

    assert not result.converged
    assert result.iterations == 0
    assert np.array_equal(result.x, u)


def test_bordered_jacobian_solves_like_full_matrix():
    pb, u = _setup(M=12)
    n = pb.size
    rhs = np.random.default_rng(3).standard_normal(n)

    J = pb.jacobian(JacobianKind.FULL_SPARSE, u)
    ref = spla.spsolve(J.tocsc(), rhs)

    jac = PeriodicOrbitBorderedJacobian(pb, CyclicOperator(pb.N, pb.M)).update(u)
    x, converged, it = PeriodicOrbitBorderedLS()(jac, rhs)
    assert converged
    assert it == 2
    assert np.allclose(x, ref, atol=1e-8)
    assert np.allclose(jac.matvec(x), rhs, atol=1e-5)

    bls = BorderingSolver(CyclicSolver(GMRESSolver(tol=1e-13)))
    jac_mf = PeriodicOrbitBorderedJacobian(
        pb, CyclicOperator(pb.N, pb.M, matrix_free=True), bls
    )
    x_mf, converged, it = jac_mf(u).solve(rhs)
    assert converged
    assert it > 2
    assert np.allclose(x_mf, ref, atol=1e-7)


def test_bordered_jacobian_materialised_by_full_bordering():
    pb, u = _setup(M=8)
    jac = PeriodicOrbitBorderedJacobian(pb, CyclicOperator(pb.N, pb.M)).update(u)
    J = pb.jacobian(JacobianKind.FULL_SPARSE, u).toarray()

    rng = np.random.default_rng(4)
    a, b, R = rng.standard_normal((3, pb.size))
    bls = BorderingSolver(PeriodicOrbitBorderedLS(), "full")
    dX, dl, converged, _ = bls(jac, a, b, 1.0, R, 0.5)
    dX_ref, dl_ref, _, _ = BorderingSolver()(J, a, b, 1.0, R, 0.5)

    assert converged
    assert np.allclose(dX, dX_ref, atol=1e-5)
    assert np.isclose(dl, dl_ref, atol=1e-5)
