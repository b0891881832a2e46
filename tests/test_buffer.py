import numpy as np
import pytest

from pyfeinterp.core.exceptions import (
    DimensionMismatchError, InvalidElementId, InvalidReferencePoint, JacobianSingularError,
    StaleBufferError,
)
from pyfeinterp.core.mesh import Mesh
from pyfeinterp.fem.space import LagrangeSpace, global_vector_from_point_fn
from pyfeinterp.interpolation import BufferUpdate, InterpolationBuffer
from pyfeinterp.utils.meshgen import unit_square_tri_mesh


@pytest.fixture
def space():
    return LagrangeSpace(unit_square_tri_mesh(2))


@pytest.fixture
def coeffs(space):
    return global_vector_from_point_fn(space.vertices(), lambda p: [p[0] + 2 * p[1], p[0] * p[1]])


def test_gather_uses_interleaved_layout(space, coeffs):
    buf = InterpolationBuffer()
    bound = buf.prepare_element_in_space(3, space, coeffs, 2)
    dofs = space.element_dofs(3)
    # at a vertex only that node's basis function is active
    bound.update_reference_point([-1.0, -1.0], BufferUpdate.VALUE_ONLY)
    assert np.allclose(bound.interpolate(), coeffs.reshape(-1, 2)[dofs[0]])
    bound.update_reference_point([1.0, -1.0], BufferUpdate.VALUE_ONLY)
    assert np.allclose(bound.interpolate(), coeffs.reshape(-1, 2)[dofs[1]])


def test_update_is_idempotent(space, coeffs):
    buf = InterpolationBuffer()
    bound = buf.prepare_element_in_space(1, space, coeffs, 2)
    xi = [-0.4, -0.2]
    bound.update_reference_point(xi, BufferUpdate.BOTH)
    v1, g1, J1 = bound.interpolate(), bound.interpolate_ref_gradient(), bound.element_reference_jacobian().copy()
    bound.update_reference_point(xi, BufferUpdate.BOTH)
    bound.update_reference_point(xi, BufferUpdate.VALUE_ONLY)
    assert np.array_equal(bound.interpolate(), v1)
    assert np.array_equal(bound.interpolate_ref_gradient(), g1)
    assert np.array_equal(bound.element_reference_jacobian(), J1)


def test_modes_fill_only_requested_slots(space, coeffs):
    buf = InterpolationBuffer()
    bound = buf.prepare_element_in_space(0, space, coeffs, 2)
    bound.update_reference_point([-0.5, -0.5], BufferUpdate.VALUE_ONLY)
    bound.interpolate()
    with pytest.raises(StaleBufferError):
        bound.interpolate_ref_gradient()
    # same point, missing slot is added without losing the value
    bound.update_reference_point([-0.5, -0.5], "gradient")
    assert bound.interpolate_ref_gradient().shape == (2, 2)
    assert bound.interpolate().shape == (2,)
    # new point invalidates what was not requested
    bound.update_reference_point([-0.2, -0.5], BufferUpdate.GRADIENT_ONLY)
    with pytest.raises(StaleBufferError):
        bound.interpolate()


def test_evaluation_before_update_is_stale(space, coeffs):
    bound = InterpolationBuffer().prepare_element_in_space(0, space, coeffs, 2)
    with pytest.raises(StaleBufferError):
        bound.interpolate()
    with pytest.raises(StaleBufferError):
        bound.element_reference_jacobian()


def test_physical_gradient_of_linear_field(space, coeffs):
    bound = InterpolationBuffer().prepare_element_in_space(5, space, coeffs, 2)
    bound.update_reference_point([-0.6, -0.1])
    grad = bound.interpolate_gradient()
    assert grad.shape == (2, 2)
    # first component x + 2y
    assert np.allclose(grad[:, 0], [1.0, 2.0])


def test_rebinding_makes_old_view_stale(space, coeffs):
    buf = InterpolationBuffer()
    first = buf.prepare_element_in_space(0, space, coeffs, 2)
    second = buf.prepare_element_in_space(1, space, coeffs, 2)
    assert not first.is_live and second.is_live
    with pytest.raises(StaleBufferError):
        first.update_reference_point([-0.5, -0.5])
    second.update_reference_point([-0.5, -0.5])
    assert second.element_id == 1


def test_context_manager_releases_binding(space, coeffs):
    buf = InterpolationBuffer()
    with buf.prepare_element_in_space(2, space, coeffs, 2) as bound:
        bound.update_reference_point([-0.5, -0.5])
        bound.interpolate()
        assert buf.is_bound
    assert not buf.is_bound
    with pytest.raises(StaleBufferError):
        bound.interpolate()
    with pytest.raises(StaleBufferError):
        buf.interpolate()


def test_coefficients_are_borrowed_read_only(space, coeffs):
    buf = InterpolationBuffer()
    buf.prepare_element_in_space(0, space, coeffs, 2)
    assert not buf._coefficients.flags.writeable
    assert coeffs.flags.writeable


@pytest.mark.parametrize("dtype", [np.int64, np.float32])
def test_rebinding_gathers_current_coefficients(space, dtype):
    # non-float64 input is converted on every bind, so edits between binds are seen
    coeffs = np.arange(space.num_global_dofs(), dtype=dtype)
    buf = InterpolationBuffer()
    buf.prepare_element_in_space(0, space, coeffs, 1)
    coeffs[:] = 100
    bound = buf.prepare_element_in_space(1, space, coeffs, 1)
    bound.update_reference_point([-1.0, -1.0], BufferUpdate.VALUE_ONLY)
    assert np.allclose(bound.interpolate(), [100.0])
    bound = buf.prepare_element_in_space(1, space, list(coeffs), 1)
    bound.update_reference_point([-1.0, -1.0], BufferUpdate.VALUE_ONLY)
    assert np.allclose(bound.interpolate(), [100.0])


@pytest.mark.parametrize("eid", [-1, 8, 100, 1.0, True])
def test_invalid_element_id(space, coeffs, eid):
    with pytest.raises(InvalidElementId):
        InterpolationBuffer().prepare_element_in_space(eid, space, coeffs, 2)


def test_coefficient_length_mismatch(space, coeffs):
    buf = InterpolationBuffer()
    with pytest.raises(DimensionMismatchError):
        buf.prepare_element_in_space(0, space, coeffs, 1)
    with pytest.raises(DimensionMismatchError):
        buf.prepare_element_in_space(0, space, coeffs[:-1], 2)
    with pytest.raises(DimensionMismatchError):
        buf.prepare_element_in_space(0, space, coeffs, 0)
    assert not buf.is_bound


@pytest.mark.parametrize("xi", [[0.5, 0.6], [-1.1, 0.0], [0.0, -1.5], [np.nan, 0.0]])
def test_reference_point_outside_triangle(space, coeffs, xi):
    bound = InterpolationBuffer().prepare_element_in_space(0, space, coeffs, 2)
    with pytest.raises(InvalidReferencePoint):
        bound.update_reference_point(xi)


def test_boundary_reference_points_are_admitted(space, coeffs):
    bound = InterpolationBuffer().prepare_element_in_space(0, space, coeffs, 2)
    for xi in ([-1.0, 1.0], [0.0, 0.0], [1.0 + 1e-12, -1.0]):
        bound.update_reference_point(xi)


def test_unknown_mode_is_rejected(space, coeffs):
    bound = InterpolationBuffer().prepare_element_in_space(0, space, coeffs, 2)
    with pytest.raises(ValueError):
        bound.update_reference_point([-0.5, -0.5], "hessian")


def test_degenerate_element_jacobian_is_singular():
    nodes = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [0.0, 1.0]])
    mesh = Mesh(nodes, np.array([[0, 1, 2], [0, 1, 3]]), element_type='tri')
    space = LagrangeSpace(mesh)
    bound = InterpolationBuffer().prepare_element_in_space(0, space, np.arange(4.0), 1)
    bound.update_reference_point([-0.5, -0.5])
    bound.interpolate()
    with pytest.raises(JacobianSingularError):
        bound.element_reference_jacobian()
    with pytest.raises(JacobianSingularError):
        bound.interpolate_gradient()


def test_space_queries():
    space = LagrangeSpace(unit_square_tri_mesh(2, poly_order=2))
    assert space.n_local_basis(0) == 6
    assert not space.is_affine(0)
    assert LagrangeSpace(unit_square_tri_mesh(1)).is_affine(1)
    with pytest.raises(InvalidElementId):
        space.n_local_basis(8)


def test_reference_point_is_tracked(space, coeffs):
    buf = InterpolationBuffer()
    bound = buf.prepare_element_in_space(0, space, coeffs, 2)
    with pytest.raises(StaleBufferError):
        bound.reference_point
    bound.update_reference_point((-0.25, -0.5), "value")
    assert np.array_equal(bound.reference_point, [-0.25, -0.5])
    assert "element=0" in repr(buf)
