import numpy as np
import pytest
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from trapcont.linearsolvers import (
    DirectSolver,
    GMRESSolver,
    apply_operator,
    as_linear_operator,
    make_linear_solver,
)


def _matrix(n=10):
    return sp.diags([-1.0, 4.0, -1.0], [-1, 0, 1], shape=(n, n), format="csr")


def test_direct_solver_dense_sparse_and_factorisation():
    A = _matrix()
    rhs = np.arange(10.0)
    ref = np.linalg.solve(A.toarray(), rhs)
    solver = DirectSolver()

    for op in (A.toarray(), A, spla.splu(sp.csc_matrix(A))):
        x, converged, it = solver(op, rhs)
        assert converged
        assert it == 1
        assert np.allclose(x, ref)


def test_direct_solver_rejects_matrix_free_operator():
    with pytest.raises(TypeError):
        DirectSolver()(lambda x: x, np.ones(3))


def test_direct_solver_singular_dense_matrix(caplog):
    x, converged, _ = DirectSolver()(np.zeros((3, 3)), np.ones(3))
    assert not converged
    assert np.all(np.isnan(x))
    assert "failed" in caplog.text


def test_gmres_matrix_free():
    A = _matrix(30)
    rhs = np.ones(30)
    x, converged, it = GMRESSolver(tol=1e-12)(lambda v: A @ v, rhs)

    assert converged
    assert it > 0
    assert np.linalg.norm(A @ x - rhs) < 1e-9


def test_gmres_reports_non_convergence(caplog):
    A = _matrix(50)
    solver = GMRESSolver(tol=1e-14, max_iterations=1, restart=2)
    x, converged, _ = solver(A, np.ones(50))

    assert not converged
    assert "GMRES did not converge" in caplog.text


def test_gmres_with_preconditioner():
    A = _matrix(20)
    lu = spla.splu(sp.csc_matrix(A))
    rhs = np.linspace(0, 1, 20)
    x, converged, it = GMRESSolver(preconditioner=lu.solve)(A, rhs)

    assert converged
    assert it <= 2
    assert np.allclose(A @ x, rhs)


def test_operator_helpers():
    A = _matrix(5)
    x = np.ones(5)

    class Op:
        def matvec(self, v):
            return A @ v

    for op in (A, A.toarray(), Op(), lambda v: A @ v):
        assert np.allclose(apply_operator(op, x), A @ x)
        assert np.allclose(as_linear_operator(op, 5) @ x, A @ x)

    with pytest.raises(TypeError):
        apply_operator(object(), x)


def test_make_linear_solver():
    params = {
        "linear_solver": {"method": "gmres", "tolerance": 1e-6, "max_iterations": 7, "restart": 5}
    }
    solver = make_linear_solver(params)
    assert isinstance(solver, GMRESSolver)
    assert (solver.tol, solver.max_iterations, solver.restart) == (1e-6, 7, 5)

    params["linear_solver"]["method"] = "direct"
    assert isinstance(make_linear_solver(params), DirectSolver)

    params["linear_solver"]["method"] = "cg"
    with pytest.raises(ValueError):
        make_linear_solver(params)
