"""pyfeinterp.fem.transform
Reference <-> physical mapping for isoparametric Lagrange elements.

Jacobian convention: ``J[b, a] = dx_b / dxi_a`` (geometry dim x reference dim),
so physical gradients are ``J^{-T} @ grad_ref``.
"""
import logging
from dataclasses import dataclass

import numba as _nb
import numpy as np

from pyfeinterp.core.exceptions import InverseMappingError, JacobianSingularError
from pyfeinterp.fem.reference import get_reference, reference_centroid

logger = logging.getLogger(__name__)

_DET_EPS = 64.0 * np.finfo(float).eps


@dataclass
class LocatorParameters:
    """Settings for reference-coordinate recovery and point location."""

    max_iterations: int = 50                    # hard cap on Newton iterations
    convergence_tolerance: float = 1e-13        # ‖Δξ‖₂ below which Newton stops
    boundary_admission_tolerance: float = 1e-10 # slack on the reference domain test
    damping: float = 1.0                        # ξ ← ξ + damping·Δξ
    candidate_padding: float = 1e-10            # relative bounding-box padding

    def __post_init__(self):
        if int(self.max_iterations) < 1:
            raise ValueError("max_iterations must be >= 1")
        if not self.convergence_tolerance > 0.0:
            raise ValueError("convergence_tolerance must be positive")
        if self.boundary_admission_tolerance < 0.0 or self.candidate_padding < 0.0:
            raise ValueError("tolerances must be non-negative")
        if not 0.0 < self.damping <= 1.0:
            raise ValueError("damping must lie in (0, 1]")
        self.max_iterations = int(self.max_iterations)


# ---------- forward map ----------

def x_mapping(mesh, elem_id, xi_eta):
    coords = mesh.element_coords(elem_id)
    ref = get_reference(mesh.element_type, mesh.poly_order)
    return ref.shape(float(xi_eta[0]), float(xi_eta[1])) @ coords     # (2,)

def jacobian(mesh, elem_id, xi_eta):
    coords = mesh.element_coords(elem_id)
    ref = get_reference(mesh.element_type, mesh.poly_order)
    return coords.T @ ref.grad(float(xi_eta[0]), float(xi_eta[1]))    # (2,2)

def det_jacobian(mesh, elem_id, xi_eta):
    return np.linalg.det(jacobian(mesh, elem_id, xi_eta))

def is_singular(J) -> bool:
    J = np.asarray(J, dtype=float)
    scale = float(np.sum(J * J))
    if not np.all(np.isfinite(J)) or scale == 0.0:
        return True
    return abs(np.linalg.det(J)) <= _DET_EPS * scale

def inverse_transpose(J, elem_id=None):
    """J^{-T}; raises JacobianSingularError for degenerate or inverted-flat geometry."""
    if is_singular(J):
        raise JacobianSingularError(f"Jacobian is singular (det={np.linalg.det(J):.3e})", element_id=elem_id)
    return np.linalg.inv(J).T

def map_grad(J, grad_ref, elem_id=None):
    """Push reference gradients (ref_dim, k) to physical ones (geo_dim, k)."""
    return inverse_transpose(J, elem_id) @ grad_ref


# ---------- inverse map: numba kernels ----------

@_nb.njit(cache=True, fastmath=False)
def _invmap_p1(coords, x, det_eps):
    # coords: (3,2) in order (-1,-1),(1,-1),(-1,1)
    X0x = coords[0, 0]; X0y = coords[0, 1]
    a00 = coords[1, 0] - X0x; a01 = coords[2, 0] - X0x
    a10 = coords[1, 1] - X0y; a11 = coords[2, 1] - X0y
    rx0 = x[0] - X0x; rx1 = x[1] - X0y
    det = a00 * a11 - a01 * a10
    out = np.empty(3)
    if abs(det) <= det_eps * (a00 * a00 + a01 * a01 + a10 * a10 + a11 * a11):
        out[0] = 0.0; out[1] = 0.0; out[2] = -1.0
        return out
    r = ( a11 * rx0 - a01 * rx1) / det
    s = (-a10 * rx0 + a00 * rx1) / det
    out[0] = 2.0 * r - 1.0; out[1] = 2.0 * s - 1.0; out[2] = 1.0
    return out


@_nb.njit(cache=True, fastmath=False)
def _invmap_q1_try(coords, x, tol, maxiter, damping, det_eps):
    # coords: (4,2) lexicographic (-1,-1),(1,-1),(-1,1),(1,1)
    xi = 0.0; eta = 0.0
    status = 0.0
    for _ in range(maxiter):
        n0 = 0.25 * (1 - xi) * (1 - eta); n1 = 0.25 * (1 + xi) * (1 - eta)
        n2 = 0.25 * (1 - xi) * (1 + eta); n3 = 0.25 * (1 + xi) * (1 + eta)
        X0 = n0 * coords[0, 0] + n1 * coords[1, 0] + n2 * coords[2, 0] + n3 * coords[3, 0]
        X1 = n0 * coords[0, 1] + n1 * coords[1, 1] + n2 * coords[2, 1] + n3 * coords[3, 1]
        rx0 = x[0] - X0; rx1 = x[1] - X1
        dx0 = -0.25 * (1 - eta); dx1 = 0.25 * (1 - eta)
        dx2 = -0.25 * (1 + eta); dx3 = 0.25 * (1 + eta)
        de0 = -0.25 * (1 - xi); de1 = -0.25 * (1 + xi)
        de2 = 0.25 * (1 - xi); de3 = 0.25 * (1 + xi)
        a00 = dx0 * coords[0, 0] + dx1 * coords[1, 0] + dx2 * coords[2, 0] + dx3 * coords[3, 0]
        a10 = dx0 * coords[0, 1] + dx1 * coords[1, 1] + dx2 * coords[2, 1] + dx3 * coords[3, 1]
        a01 = de0 * coords[0, 0] + de1 * coords[1, 0] + de2 * coords[2, 0] + de3 * coords[3, 0]
        a11 = de0 * coords[0, 1] + de1 * coords[1, 1] + de2 * coords[2, 1] + de3 * coords[3, 1]
        det = a00 * a11 - a01 * a10
        if abs(det) <= det_eps * (a00 * a00 + a01 * a01 + a10 * a10 + a11 * a11):
            status = -1.0
            break
        dxi  = ( a11 * rx0 - a01 * rx1) / det
        deta = (-a10 * rx0 + a00 * rx1) / det
        xi  += damping * dxi; eta += damping * deta
        if (dxi * dxi + deta * deta) ** 0.5 < tol:
            status = 1.0
            break
    out = np.empty(3)
    out[0] = xi; out[1] = eta; out[2] = status
    return out


def _step_floor(coords, x):
    """Smallest reference step Newton can resolve given the coordinate magnitudes."""
    extent = float(np.ptp(coords, axis=0).max())
    if extent == 0.0:
        return 0.0
    magnitude = max(float(np.abs(coords).max()), float(np.abs(x).max()))
    return 16.0 * np.finfo(float).eps * (1.0 + magnitude / extent)


def _newton_generic(mesh, elem_id, coords, x, params, tol):
    ref = get_reference(mesh.element_type, mesh.poly_order)
    xi = reference_centroid(mesh.element_type).copy()
    N = np.empty(ref.n_basis)
    dN = np.empty((ref.n_basis, 2))
    residual = np.inf
    for _ in range(params.max_iterations):
        ref.shape(xi[0], xi[1], out=N)
        ref.grad(xi[0], xi[1], out=dN)
        r = x - N @ coords
        residual = float(np.linalg.norm(r))
        J = coords.T @ dN
        if is_singular(J):
            raise JacobianSingularError(f"Jacobian singular during inversion at xi={xi}", element_id=elem_id)
        delta = np.linalg.solve(J, r)
        xi += params.damping * delta
        if np.linalg.norm(delta) < tol:
            return xi
    logger.debug("Newton inversion stalled in element %d (residual %.3e)", elem_id, residual)
    raise InverseMappingError(
        f"Inverse mapping did not converge after {params.max_iterations} iterations "
        f"for elem {elem_id}, x={x}, residual={residual:.3e}",
        element_id=elem_id, residual=residual)


def inverse_mapping(mesh, elem_id, x, params=None):
    """
    Recover reference coordinates of physical point ``x`` in element ``elem_id``.

    Closed form for straight P1 triangles, damped Newton otherwise. The result
    is not checked against the reference domain; callers decide admission.
    """
    params = params or LocatorParameters()
    x = np.asarray(x, dtype=float)
    coords = mesh.element_coords(elem_id)

    if mesh.poly_order == 1 and mesh.element_type == 'tri':
        r = _invmap_p1(coords, x, _DET_EPS)
        if r[2] < 0.0:
            raise JacobianSingularError(f"Degenerate triangle {elem_id}", element_id=elem_id)
        return r[:2].copy()

    tol = max(params.convergence_tolerance, _step_floor(coords, x))
    if mesh.poly_order == 1 and mesh.element_type == 'quad':
        r = _invmap_q1_try(coords, x, tol, params.max_iterations,
                           params.damping, _DET_EPS)
        if r[2] == 1.0:
            return r[:2].copy()
        if r[2] < 0.0:
            raise JacobianSingularError(f"Jacobian singular during inversion of quad {elem_id}",
                                        element_id=elem_id)
        logger.debug("Q1 Newton inversion stalled in element %d", elem_id)
        raise InverseMappingError(
            f"Inverse mapping did not converge after {params.max_iterations} iterations "
            f"for elem {elem_id}, x={x}", element_id=elem_id)

    return _newton_generic(mesh, elem_id, coords, x, params, tol)
