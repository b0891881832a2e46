"""pyfeinterp.integration.quadrature
Volume quadrature on the bi-unit reference triangle and quadrilateral.
"""
import math
import numpy as np
from functools import lru_cache
from numpy.polynomial.legendre import leggauss


# -------------------------------------------------------------------------
# 1‑D Gauss–Legendre
# -------------------------------------------------------------------------
def gauss_legendre(n_points: int):
    if n_points < 1:
        raise ValueError(n_points)
    return leggauss(n_points)  # (points, weights) on [-1,1]

def _points_for_degree(degree: int, extra: int = 0) -> int:
    """Gauss points per direction so that 2n-1 >= degree + extra."""
    if degree < 0:
        raise ValueError(degree)
    return max(1, math.ceil((degree + extra + 1) / 2))

# -------------------------------------------------------------------------
# Tensor‑product construction helpers
# -------------------------------------------------------------------------
@lru_cache(maxsize=None)
def quad_rule(degree: int):
    """Tensor Gauss rule on [-1,1]^2 exact for Q_degree."""
    xi, wi = gauss_legendre(_points_for_degree(degree))
    pts = np.array([[x, y] for y in xi for x in xi])
    wts = np.array([wx * wy for wy in wi for wx in wi])
    return pts, wts

@lru_cache(maxsize=None)
def tri_rule(degree: int):
    """
    Collapsed (Duffy) Gauss rule on the bi-unit triangle (-1,-1)-(1,-1)-(-1,1),
    exact for total degree ``degree``; weights sum to the area 2.
    """
    # the collapse adds one degree in the first direction
    n = _points_for_degree(degree, extra=1)
    g, w = gauss_legendre(n)
    u = 0.5 * (g + 1.0)   # [0,1]
    w_u = 0.5 * w
    pts = []
    wts = []
    for i, ui in enumerate(u):
        for j, vj in enumerate(u):
            r = ui
            s = vj * (1.0 - ui)
            pts.append([2.0 * r - 1.0, 2.0 * s - 1.0])
            wts.append(4.0 * w_u[i] * w_u[j] * (1.0 - ui))
    return np.array(pts), np.array(wts)

# -------------------------------------------------------------------------
# Public API
# -------------------------------------------------------------------------
def volume(element_type: str, degree: int = 2):
    """(points, weights) exact for polynomials of total degree ``degree``."""
    if element_type == 'tri':
        return tri_rule(degree)
    if element_type == 'quad':
        return quad_rule(degree)
    raise KeyError(element_type)
