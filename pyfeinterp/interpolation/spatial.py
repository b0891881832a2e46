"""pyfeinterp.interpolation.spatial
Physical-point queries on a finite-element space.

:class:`SpatiallyIndexed` wraps a space together with a bounding-box index
over its elements. For every query point the index proposes candidate
elements, each candidate inverts its element map, and the first candidate
whose reference coordinates fall inside the reference domain wins. The field
is then evaluated through an :class:`~pyfeinterp.interpolation.buffer.InterpolationBuffer`
bound to the winner.

Candidates are tried in ascending element id, so a point on an edge or vertex
shared by several elements always resolves to the lowest id. Values agree
across such interfaces; gradients generally do not, since the fields are only
continuous in value.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from pyfeinterp.core.exceptions import (
    BatchInterpolationError, DimensionMismatchError, EmptyMeshError, InverseMappingError,
    JacobianSingularError, PointLocationError, PyFEInterpError,
)
from pyfeinterp.core.mesh import Mesh
from pyfeinterp.fem.space import LagrangeSpace
from pyfeinterp.fem.transform import LocatorParameters
from pyfeinterp.interpolation.buffer import BufferUpdate, InterpolationBuffer, borrow_coefficients

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Bounding-box index
# ---------------------------------------------------------------------------
class SpatialIndex:
    """
    Padded axis-aligned element boxes with a KD-tree over the box centres.

    Every box containing a point has its centre within the largest box
    half-diagonal of that point, so a ball query of that radius returns a
    superset of the boxes hit; the exact box test then trims it.
    """

    def __init__(self, lower: np.ndarray, upper: np.ndarray, padding: float = 1e-10):
        lower = np.asarray(lower, dtype=float)
        upper = np.asarray(upper, dtype=float)
        if lower.ndim != 2 or lower.shape != upper.shape:
            raise DimensionMismatchError(f"Bounding boxes must be two (n, d) arrays, got {lower.shape} and {upper.shape}")
        if lower.shape[0] == 0:
            raise EmptyMeshError("Cannot build a spatial index over zero elements.")
        if not (np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
            raise EmptyMeshError("Element bounding boxes contain non-finite coordinates.")
        extent = upper - lower
        if np.all(np.any(extent <= 0.0, axis=1)):
            raise EmptyMeshError("Every element of the mesh is degenerate (zero-area bounding box).")

        # padding is relative to the overall mesh size
        scale = float(np.max(upper.max(axis=0) - lower.min(axis=0)))
        pad = padding * max(scale, 1.0)
        self.lower = lower - pad
        self.upper = upper + pad
        centres = 0.5 * (self.lower + self.upper)
        self.radius = float(0.5 * np.linalg.norm(self.upper - self.lower, axis=1).max()) * (1.0 + 1e-12)
        self._tree = cKDTree(centres)
        logger.debug("Spatial index over %d elements, query radius %.3e", len(centres), self.radius)

    def __len__(self) -> int:
        return self.lower.shape[0]

    def _filter(self, x: np.ndarray, ids) -> np.ndarray:
        ids = np.asarray(ids, dtype=np.int64)
        if ids.size == 0:
            return ids
        inside = np.all((self.lower[ids] <= x) & (x <= self.upper[ids]), axis=1)
        return np.sort(ids[inside])

    def candidates(self, x) -> np.ndarray:
        """Element ids whose padded box contains ``x``, ascending."""
        x = np.asarray(x, dtype=float)
        if not np.all(np.isfinite(x)):
            return np.empty(0, dtype=np.int64)
        return self._filter(x, self._tree.query_ball_point(x, r=self.radius))

    def candidates_many(self, points: np.ndarray) -> List[np.ndarray]:
        """Per-point candidates; rows with NaN or inf coordinates get none."""
        points = np.asarray(points, dtype=float)
        result = [np.empty(0, dtype=np.int64) for _ in range(len(points))]
        rows = np.flatnonzero(np.all(np.isfinite(points), axis=1)) if len(points) else np.empty(0, dtype=np.int64)
        if rows.size:
            hits = self._tree.query_ball_point(points[rows], r=self.radius)
            for i, ids in zip(rows, hits):
                result[i] = self._filter(points[i], ids)
        return result


# ---------------------------------------------------------------------------
#  Batch report
# ---------------------------------------------------------------------------
@dataclass
class InterpolationReport:
    """Outcome of a batch query; failed points carry element id -1 and NaN outputs."""

    n_points: int
    element_ids: np.ndarray
    reference_points: np.ndarray
    failures: Dict[int, PyFEInterpError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_indices(self) -> List[int]:
        return sorted(self.failures)

    def raise_for_failures(self) -> None:
        if self.failures:
            first = self.failed_indices[0]
            raise BatchInterpolationError(
                f"{len(self.failures)} of {self.n_points} points failed (first: index {first}: "
                f"{self.failures[first]})", failures=dict(self.failures))


# ---------------------------------------------------------------------------
#  Wrapper
# ---------------------------------------------------------------------------
class SpatiallyIndexed:
    """
    A finite-element space plus a spatial index for physical-point queries.

    Attribute access not defined here falls through to the wrapped space, so
    the wrapper can be handed to anything expecting the space itself (for
    instance :meth:`InterpolationBuffer.prepare_element_in_space`).
    Both the index and the space are read-only after construction and may be
    shared between threads.
    """

    def __init__(self, space, index: SpatialIndex, params: Optional[LocatorParameters] = None):
        self._space = space
        self._index = index
        self.params = params or LocatorParameters()

    @classmethod
    def from_space(cls, space, params: Optional[LocatorParameters] = None) -> "SpatiallyIndexed":
        """Build the index once. A bare :class:`Mesh` is wrapped in a :class:`LagrangeSpace`."""
        if isinstance(space, Mesh):
            space = LagrangeSpace(space)
        params = params or LocatorParameters()
        if space.num_elements() == 0:
            raise EmptyMeshError("Cannot build a spatial index over zero elements.")
        lower, upper = space.element_bounding_boxes()
        return cls(space, SpatialIndex(lower, upper, params.candidate_padding), params)

    def space(self):
        return self._space

    @property
    def index(self) -> SpatialIndex:
        return self._index

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._space, name)

    def __repr__(self) -> str:
        return f"<SpatiallyIndexed {self._space!r}>"

    # ..................................................................
    #  Point location
    # ..................................................................
    def _locate(self, x: np.ndarray, candidates: np.ndarray, index: Optional[int] = None) -> Tuple[int, np.ndarray]:
        tol = self.params.boundary_admission_tolerance
        for eid in candidates:
            eid = int(eid)
            try:
                xi = self._space.map_physical_coords_to_reference(eid, x, self.params)
            except (InverseMappingError, JacobianSingularError) as exc:
                logger.debug("Point %s: candidate %d rejected (%s)", tuple(x), eid, exc)
                continue
            if self._space.contains_reference_point(eid, xi, tol):
                return eid, xi
            logger.debug("Point %s: candidate %d rejected, xi=%s outside reference domain", tuple(x), eid, xi)
        raise PointLocationError(x, index=index, candidates=candidates)

    def locate_point(self, x) -> Tuple[int, np.ndarray]:
        """(element id, reference coordinates) of the element owning ``x``."""
        x = self._as_points(x).reshape(-1)
        return self._locate(x, self._index.candidates(x))

    def locate_points(self, points, *, fail_fast: bool = False) -> InterpolationReport:
        points = self._as_points(points)
        report = self._new_report(len(points))
        for i, (x, cands) in enumerate(zip(points, self._index.candidates_many(points))):
            try:
                report.element_ids[i], report.reference_points[i] = self._locate(x, cands, i)
            except PointLocationError as exc:
                self._record_failure(report, i, exc, fail_fast)
        self._log_failures(report, "locate_points")
        return report

    # ..................................................................
    #  Batch evaluation
    # ..................................................................
    def interpolate_at_points(self, points, coefficients, out_values: np.ndarray, *,
                              fail_fast: bool = False, workers: Optional[int] = None) -> InterpolationReport:
        """
        Evaluate the field at physical ``points`` into ``out_values``.

        ``out_values`` has shape ``(n_points, solution_dim)``; a 1-D array of
        length ``n_points`` stands for a scalar field. Rows of points that
        could not be located are set to NaN and listed in the returned report.
        """
        points = self._as_points(points)
        out = self._check_output(out_values, len(points), "out_values")
        if out.ndim not in (1, 2):
            raise DimensionMismatchError(f"out_values must have shape (n_points, solution_dim), got {out.shape}")
        if out.ndim == 1:
            out = out[:, np.newaxis]
        solution_dim = out.shape[1]
        return self._run_batch(points, coefficients, out, solution_dim, False, fail_fast, workers)

    def interpolate_gradient_at_points(self, points, coefficients, out_gradients: np.ndarray, *,
                                       fail_fast: bool = False, workers: Optional[int] = None) -> InterpolationReport:
        """
        Physical gradients at ``points`` into ``out_gradients``, shape
        ``(n_points, geometry_dim, solution_dim)``.

        Points on element interfaces take the gradient of the lowest-id
        element containing them.
        """
        points = self._as_points(points)
        out = self._check_output(out_gradients, len(points), "out_gradients")
        geo_dim = self._space.geometry_dim
        if out.ndim != 3 or out.shape[1] != geo_dim:
            raise DimensionMismatchError(
                f"out_gradients must have shape (n_points, {geo_dim}, solution_dim), got {out.shape}")
        return self._run_batch(points, coefficients, out, out.shape[2], True, fail_fast, workers)

    # ..................................................................
    def _run_batch(self, points, coefficients, out, solution_dim, gradient, fail_fast, workers):
        coeffs = borrow_coefficients(coefficients)
        n_dofs = self._space.num_global_dofs()
        if coeffs.size != n_dofs * solution_dim:
            raise DimensionMismatchError(
                f"Coefficient vector has length {coeffs.size}, expected "
                f"{n_dofs} dofs x {solution_dim} components = {n_dofs * solution_dim}.")

        report = self._new_report(len(points))
        n_workers = 1 if not workers else max(1, min(int(workers), len(points)))
        if n_workers == 1:
            self._evaluate_chunk(np.arange(len(points)), points, coeffs, solution_dim, out,
                                 report, gradient, fail_fast)
        else:
            # chunks write disjoint rows; each chunk owns its own buffer
            chunks = np.array_split(np.arange(len(points)), n_workers)
            partial = [self._new_report(0) for _ in chunks]
            with ThreadPoolExecutor(max_workers=n_workers) as pool:
                futures = [pool.submit(self._evaluate_chunk, idx, points, coeffs, solution_dim, out,
                                       report, gradient, fail_fast, part.failures)
                           for idx, part in zip(chunks, partial)]
                for future in futures:
                    future.result()
            for part in partial:
                report.failures.update(part.failures)
        self._log_failures(report, "interpolate_gradient_at_points" if gradient else "interpolate_at_points")
        return report

    def _evaluate_chunk(self, indices, points, coeffs, solution_dim, out, report, gradient, fail_fast,
                        failures=None):
        failures = report.failures if failures is None else failures
        mode = BufferUpdate.GRADIENT_ONLY if gradient else BufferUpdate.VALUE_ONLY
        buffer = InterpolationBuffer(self.params)
        bound = None
        try:
            for i, cands in zip(indices, self._index.candidates_many(points[indices])):
                i = int(i)
                try:
                    eid, xi = self._locate(points[i], cands, i)
                    if bound is None or bound.element_id != eid:
                        bound = buffer.prepare_element_in_space(eid, self._space, coeffs, solution_dim)
                    bound.update_reference_point(xi, mode)
                    out[i] = bound.interpolate_gradient() if gradient else bound.interpolate()
                except (PointLocationError, JacobianSingularError) as exc:
                    out[i] = np.nan
                    if fail_fast:
                        raise BatchInterpolationError(f"Point {i} failed: {exc}", failures={i: exc}) from exc
                    failures[i] = exc
                    continue
                report.element_ids[i] = eid
                report.reference_points[i] = xi
        finally:
            buffer.release()

    # ..................................................................
    def _as_points(self, points) -> np.ndarray:
        pts = np.asarray(points, dtype=float)
        geo_dim = self._space.geometry_dim
        if pts.ndim == 1 and pts.size == geo_dim:
            pts = pts.reshape(1, geo_dim)
        if pts.ndim != 2 or pts.shape[1] != geo_dim:
            raise DimensionMismatchError(f"Points must have shape (n, {geo_dim}), got {pts.shape}")
        return pts

    @staticmethod
    def _check_output(out, n_points: int, name: str) -> np.ndarray:
        if not isinstance(out, np.ndarray):
            raise TypeError(f"{name} must be a preallocated numpy array")
        if out.shape[:1] != (n_points,):
            raise DimensionMismatchError(f"{name} has {out.shape[0] if out.ndim else 0} rows, expected {n_points}")
        if not out.flags.writeable:
            raise ValueError(f"{name} is read-only")
        return out

    def _new_report(self, n_points: int) -> InterpolationReport:
        ref_dim = self._space.reference_dim
        return InterpolationReport(
            n_points=n_points,
            element_ids=np.full(n_points, -1, dtype=np.int64),
            reference_points=np.full((n_points, ref_dim), np.nan),
        )

    @staticmethod
    def _record_failure(report, i, exc, fail_fast):
        if fail_fast:
            raise BatchInterpolationError(f"Point {i} failed: {exc}", failures={i: exc}) from exc
        report.failures[i] = exc

    @staticmethod
    def _log_failures(report: InterpolationReport, what: str):
        if report.failures:
            logger.warning("%s: %d of %d points failed (first indices %s)",
                           what, len(report.failures), report.n_points, report.failed_indices[:5])
