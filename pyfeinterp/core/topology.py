import numpy as np
from dataclasses import dataclass, field
from typing import Tuple, Optional


@dataclass(slots=True, eq=False)
class Node:
    """Mesh vertex (or higher-order geometric node) in the plane; unpacks as ``x, y``."""
    id: int
    x: float
    y: float
    tag: Optional[str] = None

    def __post_init__(self):
        self.x = float(self.x)
        self.y = float(self.y)

    def __getitem__(self, idx):
        return (self.x, self.y)[idx]

    def __iter__(self):
        yield self.x
        yield self.y

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)


@dataclass(slots=True)
class Element:
    id: int                     # Element ID (dense, 0-based)
    nodes: Tuple[int, ...]      # Global node indices, reference-lattice order
    corner_nodes: Tuple[int, ...] = field(default_factory=tuple)  # CCW corners
    element_type: str = "tri"
    poly_order: int = 1
    centroid_x: Optional[float] = None
    centroid_y: Optional[float] = None

    def contains_node(self, node_id: int) -> bool:
        """Check if the element references a specific node."""
        return node_id in self.nodes

    def centroid(self) -> Tuple[float, float]:
        """Centroid of the corner nodes."""
        if self.centroid_x is None or self.centroid_y is None:
            raise ValueError("Centroid coordinates are not set.")
        return self.centroid_x, self.centroid_y
