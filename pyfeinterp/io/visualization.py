"""pyfeinterp.io.visualization"""
import numpy as np
import matplotlib.pyplot as plt
from matplotlib.collections import PolyCollection


_POINT_STYLE = {
    "located": dict(marker="o", s=12, color="tab:blue", zorder=3),
    "failed": dict(marker="x", s=40, color="tab:red", zorder=4),
    "query": dict(marker=".", s=12, color="tab:gray", zorder=3),
}


def plot_point_locations(mesh, points, report=None, ax=None, show=False, annotate_elements=False):
    """
    Draw the element outlines of ``mesh`` and the query ``points`` on top.

    Args:
        mesh (Mesh): The mesh (a space or a spatially indexed wrapper with a
                     ``mesh`` attribute also works).
        points (array_like): Physical query points, shape (n, 2).
        report (InterpolationReport, optional): If given, points are split into
                     located (blue) and failed (red crosses) ones.
        ax (matplotlib.axes.Axes, optional): Existing axes to draw on.
        show (bool, optional): Call ``plt.show()`` at the end.
        annotate_elements (bool, optional): Write element ids at the centroids.
    Returns:
        matplotlib.axes.Axes
    """
    mesh = getattr(mesh, "mesh", mesh)
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 8))

    polys = mesh.nodes_x_y_pos[mesh.corner_connectivity]
    ax.add_collection(PolyCollection(polys, facecolors="none", edgecolors="k", linewidths=0.5))

    if annotate_elements:
        for eid, (cx, cy) in enumerate(mesh.centroids()):
            ax.text(cx, cy, str(eid), fontsize=6, ha="center", va="center", color="dimgray")

    if report is None:
        ax.scatter(points[:, 0], points[:, 1], **_POINT_STYLE["query"])
    else:
        located = report.element_ids >= 0
        if np.any(located):
            ax.scatter(points[located, 0], points[located, 1], **_POINT_STYLE["located"], label="located")
        if np.any(~located):
            ax.scatter(points[~located, 0], points[~located, 1], **_POINT_STYLE["failed"], label="failed")
        ax.legend(loc="best")

    ax.autoscale_view()
    ax.set_aspect("equal", adjustable="box")
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    if show:
        plt.show()
    return ax
