from functools import lru_cache
import sympy as sp
import numpy as np

@lru_cache(maxsize=None)
def _lagrange_basis_1d(n: int):
    """1D Lagrange basis on [-1,1] with equispaced nodes, plus first derivatives."""
    x = sp.symbols('x')
    nodes = [sp.Rational(2 * i, n) - 1 for i in range(n + 1)]
    L, dL = [], []
    for i, xi in enumerate(nodes):
        Li = sp.Integer(1)
        for j, xj in enumerate(nodes):
            if i != j:
                Li *= (x - xj) / (xi - xj)
        Li = sp.expand(Li)
        L.append(Li)
        dL.append(sp.diff(Li, x))
    values = sp.lambdify(x, sp.Matrix(L), 'numpy')
    derivs = sp.lambdify(x, sp.Matrix(dL), 'numpy')
    return np.array([float(v) for v in nodes]), values, derivs


def _eval_1d(fn, z, n):
    # constant entries (e.g. Q1 derivatives) come back unbroadcast
    return np.broadcast_to(np.asarray(fn(z), dtype=float).ravel(), (n + 1,))


@lru_cache(maxsize=None)
def quad_qn(n: int):
    """
    Tensor-product Q_n on [-1,1]^2.

    Returns (nodes, shape, (d_dxi, d_deta)) where every callable maps
    (xi, eta) -> ((n+1)^2,). Stacking order is eta outer, xi inner:
    index = j*(n+1) + i.
    """
    if n < 1:
        raise ValueError("Polynomial order n must be positive.")
    nodes1d, L, dL = _lagrange_basis_1d(n)

    def shape(xi, eta):
        return np.outer(_eval_1d(L, eta, n), _eval_1d(L, xi, n)).reshape(-1)

    def d_dxi(xi, eta):
        return np.outer(_eval_1d(L, eta, n), _eval_1d(dL, xi, n)).reshape(-1)

    def d_deta(xi, eta):
        return np.outer(_eval_1d(dL, eta, n), _eval_1d(L, xi, n)).reshape(-1)

    nodes = np.array([(xi, eta) for eta in nodes1d for xi in nodes1d], dtype=float)
    return nodes, shape, (d_dxi, d_deta)
