import numpy as np
from typing import List, Optional, Tuple, Union

from pyfeinterp.core.topology import Node, Element
from pyfeinterp.core.exceptions import InvalidElementId


class Mesh:
    """
    Planar mesh of triangles or quadrilaterals of arbitrary geometric order.

    Holds node coordinates, full element connectivity (all geometric nodes in
    reference-lattice order, see :mod:`pyfeinterp.fem.reference`) and corner
    connectivity (CCW). Element ids are dense integers in ``[0, n_elements)``.
    """
    _CORNERS = {'tri': 3, 'quad': 4}

    def __init__(self,
                 nodes: Union[List[Node], np.ndarray],
                 element_connectivity: np.ndarray,
                 elements_corner_nodes: Optional[np.ndarray] = None,
                 *,
                 element_type: str = 'tri',
                 poly_order: int = 1):
        if element_type not in self._CORNERS:
            raise KeyError(element_type)
        self.element_type = element_type
        self.poly_order = int(poly_order)
        self.spatial_dim = 2

        if isinstance(nodes, np.ndarray) and nodes.dtype != object:
            coords = np.asarray(nodes, dtype=float).reshape(-1, 2)
            self.nodes_list: List[Node] = [Node(i, x, y) for i, (x, y) in enumerate(coords)]
        else:
            self.nodes_list = list(nodes)
        self.nodes_x_y_pos = np.array([[n.x, n.y] for n in self.nodes_list], dtype=float).reshape(-1, 2)

        self.elements_connectivity = np.asarray(element_connectivity, dtype=np.int64)
        if self.elements_connectivity.size == 0:
            self.elements_connectivity = self.elements_connectivity.reshape(0, self._CORNERS[element_type])
        if elements_corner_nodes is None:
            elements_corner_nodes = self._corners_from_connectivity()
        self.corner_connectivity = np.asarray(elements_corner_nodes, dtype=np.int64).reshape(
            len(self.elements_connectivity), self._CORNERS[element_type])
        self.n_elements = len(self.elements_connectivity)
        self.elements_list: List[Element] = []
        self._build_elements()

    def _corners_from_connectivity(self) -> np.ndarray:
        """Pick the corner nodes out of the reference-lattice ordering."""
        p = self.poly_order
        conn = self.elements_connectivity
        if self.element_type == 'tri':
            # lattice rows in eta: corners at 0, p, last
            n_loc = (p + 1) * (p + 2) // 2
            return conn[:, [0, p, n_loc - 1]]
        # eta outer, xi inner; CCW = bl, br, tr, tl
        return conn[:, [0, p, (p + 1) * (p + 1) - 1, p * (p + 1)]]

    def _build_elements(self):
        for eid, elem_nodes in enumerate(self.elements_connectivity):
            corners = self.corner_connectivity[eid]
            cx, cy = self.nodes_x_y_pos[corners].mean(axis=0)
            self.elements_list.append(Element(
                id=eid,
                nodes=tuple(int(n) for n in elem_nodes),
                corner_nodes=tuple(int(n) for n in corners),
                element_type=self.element_type,
                poly_order=self.poly_order,
                centroid_x=float(cx),
                centroid_y=float(cy),
            ))

    # --- Public API ---
    @property
    def n_nodes(self) -> int:
        return len(self.nodes_list)

    def vertices(self) -> np.ndarray:
        """Node coordinates, shape (n_nodes, 2)."""
        return self.nodes_x_y_pos

    def check_element_id(self, elem_id) -> int:
        if isinstance(elem_id, (bool, np.bool_)) or not isinstance(elem_id, (int, np.integer)):
            raise InvalidElementId(elem_id, self.n_elements)
        if not 0 <= elem_id < self.n_elements:
            raise InvalidElementId(elem_id, self.n_elements)
        return int(elem_id)

    def element(self, elem_id: int) -> Element:
        return self.elements_list[self.check_element_id(elem_id)]

    def element_coords(self, elem_id: int) -> np.ndarray:
        """Coordinates of all geometric nodes of an element, shape (n_loc, 2)."""
        return self.nodes_x_y_pos[self.elements_connectivity[self.check_element_id(elem_id)]]

    def centroids(self) -> np.ndarray:
        return np.array([[e.centroid_x, e.centroid_y] for e in self.elements_list], dtype=float).reshape(-1, 2)

    def bounding_boxes(self) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned boxes over every geometric node: (lower, upper), each (n_elements, 2)."""
        if self.n_elements == 0:
            empty = np.empty((0, 2), dtype=float)
            return empty, empty.copy()
        coords = self.nodes_x_y_pos[self.elements_connectivity]      # (nE, n_loc, 2)
        return coords.min(axis=1), coords.max(axis=1)

    def areas(self) -> np.ndarray:
        """Area of the straight-sided polygon spanned by the corner nodes."""
        corner_coords = self.nodes_x_y_pos[self.corner_connectivity]  # (nE, nc, 2)
        x, y = corner_coords[..., 0], corner_coords[..., 1]
        shoelace = (x * np.roll(y, -1, axis=1) - y * np.roll(x, -1, axis=1)).sum(axis=1)
        return 0.5 * np.abs(shoelace)

    def element_char_length(self, elem_id):
        return np.sqrt(self.areas()[self.check_element_id(elem_id)])

    def __repr__(self):
        return (f"<Mesh n_nodes={len(self.nodes_list)}, "
                f"n_elems={self.n_elements}, "
                f"elem_type='{self.element_type}', "
                f"poly_order={self.poly_order}>")
