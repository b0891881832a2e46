"""pyfeinterp.utils.meshgen
Mesh generators for quick tests.
"""
import numpy as np
import numba
from scipy.spatial import Delaunay
from typing import List, Optional, Tuple

from pyfeinterp.core.mesh import Mesh
from pyfeinterp.core.topology import Node

__all__ = ["delaunay_rectangle", "structured_quad", "structured_triangles",
           "unit_square_tri_mesh"]


def delaunay_rectangle(length: float, height: float, nx: int = 10, ny: int = 10,
                       jitter: float = 0.0, seed: Optional[int] = None):
    """P1 Delaunay triangulation of a perturbed rectangular point lattice."""
    x = np.linspace(0.0, length, nx)
    y = np.linspace(0.0, height, ny)
    X, Y = np.meshgrid(x, y)
    pts = np.column_stack([X.ravel(), Y.ravel()])
    if jitter > 0.0:
        rng = np.random.default_rng(seed)
        interior = ((pts[:, 0] > 0) & (pts[:, 0] < length) & (pts[:, 1] > 0) & (pts[:, 1] < height))
        h = min(length / max(nx - 1, 1), height / max(ny - 1, 1))
        pts[interior] += rng.uniform(-jitter * h, jitter * h, size=(interior.sum(), 2))
    tri = Delaunay(pts)
    elems = tri.simplices.copy()

    # make triangles CCW
    a, b, c = pts[elems[:, 0]], pts[elems[:, 1]], pts[elems[:, 2]]
    signed = (b[:, 0]-a[:, 0])*(c[:, 1]-a[:, 1]) - (b[:, 1]-a[:, 1])*(c[:, 0]-a[:, 0])
    flip = signed < 0
    elems[flip, 1], elems[flip, 2] = elems[flip, 2].copy(), elems[flip, 1].copy()
    return pts, elems


@numba.njit(cache=True)
def _structured_qn_connectivity(nx: int, ny: int, order: int):
    """Lexicographic (eta outer, xi inner) Qn connectivity and CCW corners."""
    num_global_nodes_x = order * nx + 1
    nodes_per_edge_1d = order + 1
    elements = np.empty((nx * ny, nodes_per_edge_1d**2), dtype=np.int64)
    corners = np.empty((nx * ny, 4), dtype=np.int64)
    for el_idx in range(nx * ny):
        el_j = el_idx // nx
        el_i = el_idx % nx
        start_ix, start_iy = order * el_i, order * el_j
        local = 0
        for local_ny in range(nodes_per_edge_1d):
            for local_nx in range(nodes_per_edge_1d):
                elements[el_idx, local] = (start_iy + local_ny) * num_global_nodes_x + (start_ix + local_nx)
                local += 1
        bl = start_iy * num_global_nodes_x + start_ix
        corners[el_idx, 0] = bl
        corners[el_idx, 1] = bl + order
        corners[el_idx, 2] = bl + order * num_global_nodes_x + order
        corners[el_idx, 3] = bl + order * num_global_nodes_x
    return elements, corners


def _lattice_nodes(Lx, Ly, n_x, n_y, offset) -> List[Node]:
    ox, oy = offset if offset is not None else (0.0, 0.0)
    x_fine = np.linspace(0.0, Lx, n_x) + ox
    y_fine = np.linspace(0.0, Ly, n_y) + oy
    return [Node(id=j * n_x + i, x=x_fine[i], y=y_fine[j])
            for j in range(n_y) for i in range(n_x)]


def structured_quad(Lx: float, Ly: float, *, nx: int, ny: int, poly_order: int = 1,
                    offset: Optional[Tuple[float, float]] = None):
    """
    Structured Qn quadrilateral mesh of [0,Lx]x[0,Ly].
    Returns raw data: node objects, element connectivity, corner connectivity.
    """
    if not isinstance(poly_order, int) or poly_order < 1:
        raise ValueError("Polynomial order must be a positive integer.")
    nodes = _lattice_nodes(Lx, Ly, poly_order * nx + 1, poly_order * ny + 1, offset)
    elements, corners = _structured_qn_connectivity(nx, ny, poly_order)
    return nodes, elements, corners


def structured_triangles(Lx: float, Ly: float, *, nx_quads: int, ny_quads: int, poly_order: int = 1,
                         offset: Optional[Tuple[float, float]] = None):
    """
    Structured Pk triangle mesh, two triangles per base quad.
    Returns raw data: node objects, element connectivity, corner connectivity.
    """
    order_k = poly_order
    if not isinstance(order_k, int) or order_k < 1:
        raise ValueError("Polynomial order must be a positive integer.")

    num_fine_nodes_x = order_k * nx_quads + 1
    num_fine_nodes_y = order_k * ny_quads + 1
    nodes = _lattice_nodes(Lx, Ly, num_fine_nodes_x, num_fine_nodes_y, offset)

    num_nodes_per_elem = (order_k + 1) * (order_k + 2) // 2
    num_elems = 2 * nx_quads * ny_quads
    elements = np.empty((num_elems, num_nodes_per_elem), dtype=np.int64)
    elements_corner_nodes = np.empty((num_elems, 3), dtype=np.int64)
    elem_idx_counter = 0

    get_node_id = lambda ix, iy: iy * num_fine_nodes_x + ix

    for e_iy in range(ny_quads):
        for e_ix in range(nx_quads):
            v00 = (order_k * e_ix, order_k * e_iy)
            v10 = (order_k * (e_ix + 1), order_k * e_iy)
            v01 = (order_k * e_ix, order_k * (e_iy + 1))
            v11 = (order_k * (e_ix + 1), order_k * (e_iy + 1))

            for V0, V1, V2 in ((v00, v10, v11), (v00, v11, v01)):
                # lattice order matches the reference element (eta rows, xi inner)
                local_node_idx = 0
                for j_level in range(order_k + 1):
                    for i_level in range(order_k + 1 - j_level):
                        node_ix = V0[0] + i_level * ((V1[0] - V0[0]) // order_k) + j_level * ((V2[0] - V0[0]) // order_k)
                        node_iy = V0[1] + i_level * ((V1[1] - V0[1]) // order_k) + j_level * ((V2[1] - V0[1]) // order_k)
                        elements[elem_idx_counter, local_node_idx] = get_node_id(node_ix, node_iy)
                        local_node_idx += 1
                elements_corner_nodes[elem_idx_counter] = [get_node_id(*V0), get_node_id(*V1), get_node_id(*V2)]
                elem_idx_counter += 1

    return nodes, elements, elements_corner_nodes


def unit_square_tri_mesh(n: int, poly_order: int = 1) -> Mesh:
    """Unit square split into n x n cells, each cut into two triangles."""
    nodes, elems, corners = structured_triangles(1.0, 1.0, nx_quads=n, ny_quads=n, poly_order=poly_order)
    return Mesh(nodes, elems, corners, element_type='tri', poly_order=poly_order)
