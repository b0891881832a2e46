"""Exception taxonomy for pyfeinterp."""

from __future__ import annotations


class PyFEInterpError(Exception):
    """Base exception for all pyfeinterp errors."""

    pass


class DimensionMismatchError(PyFEInterpError, ValueError):
    """Coefficient vector or output storage inconsistent with the space."""

    pass


class InvalidElementId(PyFEInterpError, IndexError):
    """Element id outside ``[0, num_elements)``."""

    def __init__(self, element_id, num_elements: int) -> None:
        super().__init__(f"Element id {element_id} out of range [0, {num_elements}).")
        self.element_id = element_id
        self.num_elements = num_elements


class InvalidReferencePoint(PyFEInterpError, ValueError):
    """Reference point outside the reference element's domain."""

    def __init__(self, point, element_type: str) -> None:
        super().__init__(f"Point {tuple(point)} lies outside the reference {element_type}.")
        self.point = point
        self.element_type = element_type


class JacobianSingularError(PyFEInterpError, ArithmeticError):
    """Reference-to-physical Jacobian is not invertible."""

    def __init__(self, message: str, element_id: int | None = None) -> None:
        super().__init__(message)
        self.element_id = element_id


class InverseMappingError(PyFEInterpError, ArithmeticError):
    """Newton inversion of the element map did not converge."""

    def __init__(self, message: str, element_id: int | None = None, residual: float | None = None) -> None:
        super().__init__(message)
        self.element_id = element_id
        self.residual = residual


class PointLocationError(PyFEInterpError, LookupError):
    """No element of the mesh accepted a physical point."""

    def __init__(self, point, index: int | None = None, candidates=()) -> None:
        where = "" if index is None else f" (index {index})"
        super().__init__(f"No element contains point {tuple(point)}{where}; "
                         f"{len(candidates)} candidate(s) rejected.")
        self.point = point
        self.index = index
        self.candidates = tuple(candidates)


class EmptyMeshError(PyFEInterpError, ValueError):
    """Spatial index requested over an empty or fully degenerate mesh."""

    pass


class StaleBufferError(PyFEInterpError, RuntimeError):
    """Interpolation buffer used without the required update or after release."""

    pass


class BatchInterpolationError(PyFEInterpError):
    """One or more points of a batch query failed."""

    def __init__(self, message: str, failures: dict[int, PyFEInterpError] | None = None) -> None:
        super().__init__(message)
        self.failures = failures or {}
