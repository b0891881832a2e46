# pyfeinterp.fem.reference
"""
Order-agnostic reference-element factory.

Both reference domains are bi-unit: the triangle has vertices
(-1,-1), (1,-1), (-1,1); the quadrilateral is [-1,1]^2.
"""
from functools import lru_cache
from importlib import import_module
import numpy as np

REFERENCE_DIM = 2

class Ref:
    def __init__(self, element_type, poly_order, nodes, shape_lambda, grad_lambdas):
        self.element_type = element_type
        self.poly_order = poly_order
        self.nodes = nodes
        self.n_basis = len(nodes)
        self.shape_lambda = shape_lambda
        self.grad_lambdas = grad_lambdas

    def shape(self, xi, eta, out=None):
        """Basis values at (xi, eta), shape (n_basis,)."""
        vals = np.asarray(self.shape_lambda(xi, eta), dtype=float).ravel()
        if out is None:
            return vals
        out[:] = vals
        return out

    def grad(self, xi, eta, out=None):
        """Reference gradients, shape (n_basis, 2) with columns (d/dxi, d/deta)."""
        if out is None:
            out = np.empty((self.n_basis, REFERENCE_DIM), dtype=float)
        for a, fn in enumerate(self.grad_lambdas):
            out[:, a] = np.asarray(fn(xi, eta), dtype=float).ravel()
        return out

    def __repr__(self):
        return f"<Ref {self.element_type} p={self.poly_order} n_basis={self.n_basis}>"


def reference_contains(element_type: str, point, tol: float = 0.0) -> bool:
    """Reference-domain membership, admitting points up to ``tol`` outside."""
    xi, eta = float(point[0]), float(point[1])
    if not (np.isfinite(xi) and np.isfinite(eta)):
        return False
    if element_type == "tri":
        return xi >= -1.0 - tol and eta >= -1.0 - tol and xi + eta <= tol
    if element_type == "quad":
        return abs(xi) <= 1.0 + tol and abs(eta) <= 1.0 + tol
    raise KeyError(element_type)


def reference_vertices(element_type: str) -> np.ndarray:
    if element_type == "tri":
        return np.array([[-1.0, -1.0], [1.0, -1.0], [-1.0, 1.0]])
    if element_type == "quad":
        return np.array([[-1.0, -1.0], [1.0, -1.0], [1.0, 1.0], [-1.0, 1.0]])
    raise KeyError(element_type)


def reference_centroid(element_type: str) -> np.ndarray:
    return reference_vertices(element_type).mean(axis=0)


@lru_cache(maxsize=None)
def get_reference(element_type: str, poly_order: int = 1):
    if element_type == "quad":
        nodes, shape_l, grad_l = import_module("pyfeinterp.fem.reference.quad_qn").quad_qn(poly_order)
    elif element_type == "tri":
        nodes, shape_l, grad_l = import_module("pyfeinterp.fem.reference.tri_pn").tri_pn(poly_order)
    else:
        raise KeyError(element_type)
    return Ref(element_type, poly_order, nodes, shape_l, grad_l)
