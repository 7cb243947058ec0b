import numpy as np
import pytest

from trapcont.vectorfield import VectorField


def _F(x, p):
    return np.array([p * x[0] - x[1] ** 3, x[0] * x[1]])


def _J(x, p):
    return np.array([[p, -3 * x[1] ** 2], [x[1], x[0]]])


def _F_inplace(out, x, p):
    out[:] = _F(x, p)


def _dF_inplace(out, x, p, dx):
    out[:] = _J(x, p) @ dx


X = np.array([0.3, -1.2])
DX = np.array([1.0, 0.5])


def test_jacobian_apply_fallbacks_agree():
    exact = _J(X, 2.0) @ DX
    with_dF = VectorField(_F, dF=lambda x, p, dx: _J(x, p) @ dx)
    with_J = VectorField(_F, J=_J)
    fd_only = VectorField(_F)

    assert np.allclose(with_dF.apply_jacobian(X, 2.0, DX), exact)
    assert np.allclose(with_J.apply_jacobian(X, 2.0, DX), exact)
    assert np.allclose(fd_only.apply_jacobian(X, 2.0, DX), exact, atol=1e-6)


def test_jacobian_built_from_directional_derivative():
    vf = VectorField(_F, dF=lambda x, p, dx: _J(x, p) @ dx)
    assert np.allclose(vf.jacobian(X, 2.0), _J(X, 2.0))


def test_inplace_callbacks():
    vf = VectorField(_F_inplace, dF=_dF_inplace, isinplace=True)
    out = np.empty(2)
    vf.residual(X, 2.0, out=out)
    assert np.allclose(out, _F(X, 2.0))
    assert np.allclose(vf.apply_jacobian(X, 2.0, DX), _J(X, 2.0) @ DX)


def test_hessian_apply():
    # d2F(x)[dx1, dx2] for F above
    def d2F(x, p, dx1, dx2):
        return np.array([-6 * x[1] * dx1[1] * dx2[1], dx1[0] * dx2[1] + dx1[1] * dx2[0]])

    exact = d2F(X, 2.0, DX, DX[::-1])
    assert VectorField(_F, J=_J, d2F=d2F).has_hessian
    assert np.allclose(VectorField(_F, J=_J, d2F=d2F).apply_hessian(X, 2.0, DX, DX[::-1]), exact)

    fd = VectorField(_F, J=_J)
    assert not fd.has_hessian
    assert np.allclose(fd.apply_hessian(X, 2.0, DX, DX[::-1]), exact, atol=1e-5)


def test_vector_field_must_be_callable():
    with pytest.raises(TypeError):
        VectorField(None)
