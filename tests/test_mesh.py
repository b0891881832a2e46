import numpy as np
import pytest
from pyfeinterp.core import Mesh
from pyfeinterp.core.exceptions import InvalidElementId
from pyfeinterp.utils.meshgen import structured_quad, structured_triangles, unit_square_tri_mesh

def test_unit_square_triangles():
    mesh = unit_square_tri_mesh(10)
    assert mesh.n_elements == 200 and mesh.n_nodes == 121
    assert np.allclose(mesh.areas(), 0.005)
    lower, upper = mesh.bounding_boxes()
    assert lower.shape == upper.shape == (200, 2)
    assert np.all(upper - lower > 0)

def test_corners_derived_from_connectivity():
    nodes, elems, corners = structured_triangles(1.0, 1.0, nx_quads=2, ny_quads=1, poly_order=3)
    a = Mesh(nodes, elems, corners, element_type='tri', poly_order=3)
    b = Mesh(nodes, elems, element_type='tri', poly_order=3)
    assert np.array_equal(a.corner_connectivity, b.corner_connectivity)
    nodes, elems, corners = structured_quad(1.0, 1.0, nx=2, ny=3, poly_order=2)
    a = Mesh(nodes, elems, corners, element_type='quad', poly_order=2)
    b = Mesh(nodes, elems, element_type='quad', poly_order=2)
    assert np.array_equal(a.corner_connectivity, b.corner_connectivity)
    assert np.all(a.areas() > 0)

def test_element_lookup_and_coords():
    nodes=np.array([[0,0],[1,0],[1,1],[0,1]])
    elements_connectivity=np.array([[0,1,2],[0,2,3]])
    mesh=Mesh(nodes,elements_connectivity,element_type='tri')
    assert np.allclose(mesh.element_coords(1), [[0,0],[1,1],[0,1]])
    assert mesh.element(1).contains_node(3)
    assert np.allclose(mesh.centroids(), [[2/3,1/3],[1/3,2/3]])
    for bad in (-1, 2, 0.5):
        with pytest.raises(InvalidElementId):
            mesh.element_coords(bad)

def test_unknown_element_type():
    with pytest.raises(KeyError):
        Mesh(np.zeros((3, 2)), np.array([[0, 1, 2]]), element_type='hex')

def test_nodes_and_elements():
    from pyfeinterp.core.topology import Node
    n = Node(4, 0.5, 0.25)
    assert list(n) == [0.5, 0.25] and n[1] == 0.25
    assert isinstance(n.x, float) and Node(5, 1, 2).as_array().dtype == float
    assert n != Node(9, 0.5, 0.25) and n == n
    assert {n, n} == {n}
    assert np.array_equal(n.as_array(), [0.5, 0.25])
    mesh = unit_square_tri_mesh(2)
    assert np.allclose(mesh.element(0).centroid(), mesh.centroids()[0])
    assert np.isclose(mesh.element_char_length(0), np.sqrt(0.125))
