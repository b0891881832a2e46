from functools import lru_cache
import sympy as sp
import numpy as np


def tri_lattice(n: int):
    """Pn nodes on the bi-unit triangle (-1,-1)-(1,-1)-(-1,1), rows in eta, xi inner."""
    return [(sp.Rational(2 * i, n) - 1, sp.Rational(2 * j, n) - 1)
            for j in range(n + 1) for i in range(n + 1 - j)]


@lru_cache(maxsize=None)
def tri_pn(n: int):
    """
    Lagrange Pn basis on the bi-unit reference triangle.

    Args:
        n: Polynomial order, n >= 1.

    Returns:
        tuple: (nodes, shape_lambda, grad_lambdas)
            - nodes: (n_basis, 2) float array of reference nodes in lattice order.
            - shape_lambda: callable (xi, eta) -> [phi_1, ..., phi_N].
            - grad_lambdas: pair of callables giving d/dxi and d/deta of every phi_k.
    """
    if n < 1:
        raise ValueError("Polynomial order n must be positive.")
    xi_sym, eta_sym = sp.symbols("xi eta")

    nodes_ref_coords = tri_lattice(n)
    num_nodes = len(nodes_ref_coords)

    # Complete polynomial space of total degree <= n
    monomials_sym = [xi_sym**pow_xi * eta_sym**(total_degree - pow_xi)
                     for total_degree in range(n + 1)
                     for pow_xi in range(total_degree + 1)]
    if len(monomials_sym) != num_nodes:
        raise RuntimeError(f"Internal error: {num_nodes} nodes vs {len(monomials_sym)} monomials for n={n}.")

    V_matrix = sp.Matrix(num_nodes, num_nodes,
                         lambda i, j: monomials_sym[j].subs({xi_sym: nodes_ref_coords[i][0],
                                                             eta_sym: nodes_ref_coords[i][1]}))
    try:
        coeffs_matrix = V_matrix.T.inv()
    except ValueError as exc:
        raise RuntimeError(f"Vandermonde matrix is singular for tri_pn order n={n}.") from exc

    monomials_col = sp.Matrix(monomials_sym)
    basis_sym = [sp.expand((coeffs_matrix.row(k) * monomials_col)[0, 0]) for k in range(num_nodes)]

    dxi_sym = [sp.diff(phi, xi_sym) for phi in basis_sym]
    deta_sym = [sp.diff(phi, eta_sym) for phi in basis_sym]

    shape_lambda = sp.lambdify((xi_sym, eta_sym), sp.Matrix(basis_sym), "numpy")
    grad_lambdas = (sp.lambdify((xi_sym, eta_sym), sp.Matrix(dxi_sym), "numpy"),
                    sp.lambdify((xi_sym, eta_sym), sp.Matrix(deta_sym), "numpy"))
    nodes = np.array([[float(a), float(b)] for a, b in nodes_ref_coords], dtype=float)
    return nodes, shape_lambda, grad_lambdas
