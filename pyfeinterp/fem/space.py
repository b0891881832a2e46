"""pyfeinterp.fem.space
Isoparametric continuous Lagrange space on a :class:`~pyfeinterp.core.mesh.Mesh`.

This is the finite-element space the interpolation machinery consumes. Any
object offering the same methods (``num_elements``, ``num_global_dofs``,
``element_dofs``, ``populate_element_basis``, ``populate_element_gradients``,
``map_element_reference_coords``, ``element_reference_jacobian``,
``map_physical_coords_to_reference``, ``check_reference_point``,
``element_bounding_boxes``) can be used in its place.
"""
from typing import Callable, Sequence

import numpy as np

from pyfeinterp.core.mesh import Mesh
from pyfeinterp.core.exceptions import DimensionMismatchError, InvalidReferencePoint
from pyfeinterp.fem import transform
from pyfeinterp.fem.reference import REFERENCE_DIM, get_reference, reference_contains


class LagrangeSpace:
    """One scalar DOF per mesh node; basis order equals the geometric order."""

    reference_dim = REFERENCE_DIM

    def __init__(self, mesh: Mesh):
        if not isinstance(mesh, Mesh):
            raise TypeError("'mesh' must be a pyfeinterp Mesh instance.")
        self.mesh = mesh
        self.geometry_dim = mesh.spatial_dim
        self.ref = get_reference(mesh.element_type, mesh.poly_order)
        if mesh.elements_connectivity.shape[1] != self.ref.n_basis and mesh.n_elements:
            raise DimensionMismatchError(
                f"{mesh.element_type} of order {mesh.poly_order} needs {self.ref.n_basis} nodes per "
                f"element, connectivity has {mesh.elements_connectivity.shape[1]}.")

    # ..................................................................
    def num_elements(self) -> int:
        return self.mesh.n_elements

    def num_global_dofs(self) -> int:
        return self.mesh.n_nodes

    def vertices(self) -> np.ndarray:
        """DOF coordinates (the mesh nodes), in global DOF order."""
        return self.mesh.vertices()

    @property
    def element_type(self) -> str:
        return self.mesh.element_type

    def n_local_basis(self, elem_id: int) -> int:
        self.mesh.check_element_id(elem_id)
        return self.ref.n_basis

    def element_dofs(self, elem_id: int) -> np.ndarray:
        """Local-to-global DOF map of one element."""
        return self.mesh.elements_connectivity[self.mesh.check_element_id(elem_id)]

    def is_affine(self, elem_id: int) -> bool:
        self.mesh.check_element_id(elem_id)
        return self.mesh.element_type == 'tri' and self.mesh.poly_order == 1

    # ..................................................................
    #  Reference-domain checks and basis tabulation
    # ..................................................................
    def check_reference_point(self, elem_id: int, xi, tol: float = 0.0) -> np.ndarray:
        self.mesh.check_element_id(elem_id)
        xi = np.asarray(xi, dtype=float).reshape(-1)
        if xi.shape != (self.reference_dim,) or not reference_contains(self.element_type, xi, tol):
            raise InvalidReferencePoint(xi, self.element_type)
        return xi

    def contains_reference_point(self, elem_id: int, xi, tol: float = 0.0) -> bool:
        return reference_contains(self.mesh.element_type, xi, tol)

    def populate_element_basis(self, elem_id: int, xi, out: np.ndarray) -> np.ndarray:
        self.mesh.check_element_id(elem_id)
        return self.ref.shape(float(xi[0]), float(xi[1]), out=out)

    def populate_element_gradients(self, elem_id: int, xi, out: np.ndarray) -> np.ndarray:
        """Reference gradients, (n_basis, reference_dim)."""
        self.mesh.check_element_id(elem_id)
        return self.ref.grad(float(xi[0]), float(xi[1]), out=out)

    # ..................................................................
    #  Geometry
    # ..................................................................
    def map_element_reference_coords(self, elem_id: int, xi) -> np.ndarray:
        return transform.x_mapping(self.mesh, elem_id, xi)

    def element_reference_jacobian(self, elem_id: int, xi) -> np.ndarray:
        """(geometry_dim, reference_dim) Jacobian of the element map at ``xi``."""
        return transform.jacobian(self.mesh, elem_id, xi)

    def map_physical_coords_to_reference(self, elem_id: int, x, params=None) -> np.ndarray:
        return transform.inverse_mapping(self.mesh, self.mesh.check_element_id(elem_id), x, params)

    def element_bounding_boxes(self, curved_padding: float = 0.1):
        """
        Per-element (lower, upper) boxes over the geometric nodes. Higher-order
        edges may bulge past their nodes, so those boxes are grown by
        ``curved_padding`` times their extent.
        """
        lower, upper = self.mesh.bounding_boxes()
        if self.mesh.poly_order > 1:
            grow = curved_padding * (upper - lower)
            lower, upper = lower - grow, upper + grow
        return lower, upper

    def __repr__(self) -> str:
        return (f"<LagrangeSpace {self.mesh.element_type} p={self.mesh.poly_order}, "
                f"n_elements={self.num_elements()}, n_dofs={self.num_global_dofs()}>")


def global_vector_from_point_fn(points: np.ndarray, fn: Callable[[np.ndarray], Sequence[float]]) -> np.ndarray:
    """
    Sample ``fn`` at every point into an interleaved coefficient vector.

    The result has length ``len(points) * solution_dim`` with component ``c``
    of point ``i`` stored at ``i * solution_dim + c``; ``solution_dim`` is the
    length of ``fn``'s output (scalars count as 1).
    """
    points = np.asarray(points, dtype=float)
    samples = [np.atleast_1d(np.asarray(fn(p), dtype=float)) for p in points]
    if not samples:
        return np.zeros(0, dtype=float)
    dims = {s.size for s in samples}
    if len(dims) != 1:
        raise DimensionMismatchError(f"fn returned inconsistent output sizes {sorted(dims)}")
    return np.concatenate(samples)
