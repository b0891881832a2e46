"""pyfeinterp.interpolation.buffer
Per-element interpolation scratch state.

An :class:`InterpolationBuffer` is bound to one element of a space at a time
(:meth:`InterpolationBuffer.prepare_element_in_space`), gathers that
element's slice of a global coefficient vector once, and then evaluates the
field at any number of reference points inside the element. Basis values and
reference gradients are recomputed only when the reference point changes, and
only the slots the requested :class:`BufferUpdate` mode needs.

A buffer is mutable scratch: give every worker thread its own instance.
"""
from __future__ import annotations

import enum
from typing import Optional

import numpy as np

from pyfeinterp.core.exceptions import (
    DimensionMismatchError, InvalidElementId, StaleBufferError,
)
from pyfeinterp.fem import transform
from pyfeinterp.fem.transform import LocatorParameters


class BufferUpdate(enum.Flag):
    """Which basis data an update of the reference point must provide."""
    VALUE_ONLY = 1
    GRADIENT_ONLY = 2
    BOTH = VALUE_ONLY | GRADIENT_ONLY

    @classmethod
    def coerce(cls, mode) -> "BufferUpdate":
        if isinstance(mode, cls):
            return mode
        try:
            return _MODE_NAMES[str(mode).lower()]
        except KeyError:
            raise ValueError(f"Unknown buffer update mode {mode!r}; "
                             f"expected one of {sorted(_MODE_NAMES)}") from None


_MODE_NAMES = {
    "value": BufferUpdate.VALUE_ONLY,
    "gradient": BufferUpdate.GRADIENT_ONLY,
    "both": BufferUpdate.BOTH,
}
_NOTHING = BufferUpdate(0)


def borrow_coefficients(coefficients) -> np.ndarray:
    """Flat, read-only float view of a global coefficient vector."""
    arr = np.asarray(coefficients, dtype=float)
    if arr.ndim != 1:
        raise DimensionMismatchError(f"Global coefficients must be a flat vector, got shape {arr.shape}")
    view = arr.view()
    view.flags.writeable = False
    return view


class InterpolationBuffer:
    """
    Reusable interpolation state: Unbound -> Bound(element) -> ... -> Unbound.

    Parameters
    ----------
    params
        :class:`~pyfeinterp.fem.transform.LocatorParameters`; only
        ``boundary_admission_tolerance`` is used here, as the slack allowed
        when validating reference points against the reference domain.
    """

    def __init__(self, params: Optional[LocatorParameters] = None):
        self.params = params or LocatorParameters()
        self._space = None
        self._element_id: Optional[int] = None
        self._coefficients: Optional[np.ndarray] = None
        self._solution_dim = 0
        self._generation = 0

        self._local = np.empty((0, 0))
        self._basis = np.empty(0)
        self._basis_grad = np.empty((0, 0))
        self._point = np.empty(0)
        self._has_point = False
        self._valid = _NOTHING
        self._jacobian: Optional[np.ndarray] = None

    # ..................................................................
    #  Binding
    # ..................................................................
    @property
    def element_id(self) -> Optional[int]:
        return self._element_id

    @property
    def is_bound(self) -> bool:
        return self._element_id is not None

    @property
    def solution_dim(self) -> int:
        return self._solution_dim

    def prepare_element_in_space(self, element_id: int, space, coefficients, solution_dim: int) -> "BoundInterpolationBuffer":
        """
        Bind to ``element_id`` of ``space`` and gather its local coefficients.

        ``coefficients`` is borrowed read-only until the returned binding is
        released or the buffer is rebound; it must not be mutated meanwhile.
        Any previously returned binding becomes stale.
        """
        n_elements = space.num_elements()
        if isinstance(element_id, (bool, np.bool_)) or not isinstance(element_id, (int, np.integer)) \
                or not 0 <= element_id < n_elements:
            raise InvalidElementId(element_id, n_elements)
        if isinstance(solution_dim, (bool, np.bool_)) or int(solution_dim) != solution_dim or solution_dim < 1:
            raise DimensionMismatchError(f"solution_dim must be a positive integer, got {solution_dim!r}")
        solution_dim = int(solution_dim)

        borrowed = borrow_coefficients(coefficients)
        n_dofs = space.num_global_dofs()
        if borrowed.size != n_dofs * solution_dim:
            raise DimensionMismatchError(
                f"Coefficient vector has length {borrowed.size}, expected "
                f"{n_dofs} dofs x {solution_dim} components = {n_dofs * solution_dim}.")

        dofs = space.element_dofs(element_id)
        n_loc = len(dofs)
        if self._local.shape != (n_loc, solution_dim):
            self._local = np.empty((n_loc, solution_dim))
        np.take(borrowed.reshape(n_dofs, solution_dim), dofs, axis=0, out=self._local)

        if self._basis.shape != (n_loc,):
            self._basis = np.empty(n_loc)
        ref_dim = space.reference_dim
        if self._basis_grad.shape != (n_loc, ref_dim):
            self._basis_grad = np.empty((n_loc, ref_dim))
        if self._point.shape != (ref_dim,):
            self._point = np.empty(ref_dim)

        self._space = space
        self._element_id = int(element_id)
        self._coefficients = borrowed
        self._solution_dim = solution_dim
        self._invalidate()
        self._generation += 1
        return BoundInterpolationBuffer(self, self._generation)

    def release(self) -> None:
        """Drop the coefficient borrow and return to the Unbound state."""
        self._space = None
        self._element_id = None
        self._coefficients = None
        self._solution_dim = 0
        self._invalidate()
        self._generation += 1

    def _invalidate(self):
        self._has_point = False
        self._valid = _NOTHING
        self._jacobian = None

    def _require_bound(self):
        if self._element_id is None:
            raise StaleBufferError("Interpolation buffer is not bound to an element.")

    # ..................................................................
    #  Reference point updates
    # ..................................................................
    def update_reference_point(self, point, mode=BufferUpdate.BOTH) -> None:
        """
        Move to ``point`` (reference coordinates) and make sure the basis data
        required by ``mode`` is available. Unchanged points only fill in the
        slots that are still missing.
        """
        self._require_bound()
        mode = BufferUpdate.coerce(mode)
        point = np.asarray(point, dtype=float).reshape(-1)
        if not (self._has_point and np.array_equal(point, self._point)):
            point = self._space.check_reference_point(
                self._element_id, point, self.params.boundary_admission_tolerance)
            self._point[:] = point
            self._has_point = True
            self._valid = _NOTHING
            self._jacobian = None

        missing = mode & ~self._valid
        if BufferUpdate.VALUE_ONLY in missing:
            self._space.populate_element_basis(self._element_id, self._point, self._basis)
        if BufferUpdate.GRADIENT_ONLY in missing:
            self._space.populate_element_gradients(self._element_id, self._point, self._basis_grad)
        self._valid |= missing

    @property
    def reference_point(self) -> np.ndarray:
        if not self._has_point:
            raise StaleBufferError("No reference point has been set.")
        return self._point.copy()

    # ..................................................................
    #  Evaluation
    # ..................................................................
    def interpolate(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Field value sum_k u_k phi_k, shape (solution_dim,)."""
        self._require_bound()
        if BufferUpdate.VALUE_ONLY not in self._valid:
            raise StaleBufferError("interpolate() needs a prior VALUE_ONLY or BOTH update.")
        return np.dot(self._basis, self._local, out=out)

    def interpolate_ref_gradient(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Reference gradient sum_k grad_ref(phi_k) (x) u_k, shape (reference_dim, solution_dim)."""
        self._require_bound()
        if BufferUpdate.GRADIENT_ONLY not in self._valid:
            raise StaleBufferError("interpolate_ref_gradient() needs a prior GRADIENT_ONLY or BOTH update.")
        return np.dot(self._basis_grad.T, self._local, out=out)

    def element_reference_jacobian(self) -> np.ndarray:
        """
        Jacobian of the element map at the current point, (geometry_dim, reference_dim).
        Raises JacobianSingularError if it cannot be inverted.
        """
        self._require_bound()
        if not self._has_point:
            raise StaleBufferError("element_reference_jacobian() needs a reference point.")
        if self._jacobian is None:
            J = np.asarray(self._space.element_reference_jacobian(self._element_id, self._point), dtype=float)
            J.flags.writeable = False
            self._jacobian = J
        if transform.is_singular(self._jacobian):
            raise transform.JacobianSingularError(
                f"Singular Jacobian in element {self._element_id} at {tuple(self._point)}",
                element_id=self._element_id)
        return self._jacobian

    def interpolate_gradient(self) -> np.ndarray:
        """Physical gradient J^{-T} grad_ref, shape (geometry_dim, solution_dim)."""
        grad_ref = self.interpolate_ref_gradient()
        J = self.element_reference_jacobian()
        return transform.map_grad(J, grad_ref, self._element_id)

    def __repr__(self) -> str:
        state = "unbound" if self._element_id is None else f"element={self._element_id}"
        return f"<InterpolationBuffer {state}, solution_dim={self._solution_dim}>"


class BoundInterpolationBuffer:
    """
    Handle on an :class:`InterpolationBuffer` bound to one element.

    Valid until the owning buffer is rebound or released; usable as a context
    manager, leaving the block releases the coefficient borrow.
    """
    __slots__ = ("_buffer", "_generation")

    def __init__(self, buffer: InterpolationBuffer, generation: int):
        self._buffer = buffer
        self._generation = generation

    def _live(self) -> InterpolationBuffer:
        if self._buffer._generation != self._generation:
            raise StaleBufferError("Buffer binding was released or rebound to another element.")
        return self._buffer

    @property
    def element_id(self) -> int:
        return self._live().element_id

    @property
    def solution_dim(self) -> int:
        return self._live().solution_dim

    @property
    def reference_point(self) -> np.ndarray:
        return self._live().reference_point

    def update_reference_point(self, point, mode=BufferUpdate.BOTH) -> None:
        self._live().update_reference_point(point, mode)

    def interpolate(self, out=None) -> np.ndarray:
        return self._live().interpolate(out)

    def interpolate_ref_gradient(self, out=None) -> np.ndarray:
        return self._live().interpolate_ref_gradient(out)

    def element_reference_jacobian(self) -> np.ndarray:
        return self._live().element_reference_jacobian()

    def interpolate_gradient(self) -> np.ndarray:
        return self._live().interpolate_gradient()

    @property
    def is_live(self) -> bool:
        return self._buffer._generation == self._generation

    def release(self) -> None:
        if self.is_live:
            self._buffer.release()

    def __enter__(self) -> "BoundInterpolationBuffer":
        self._live()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
