"""
Diagnostics for finished constructions.

Checks the Delaunay property of a mesh and the coverage, overlap and
ownership properties of a cell set, and provides scipy reference results
to compare against.
"""

from itertools import combinations
from typing import List, Sequence, Tuple

import numpy as np
import structlog
from scipy.spatial import ConvexHull, Delaunay
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon, box
from shapely.ops import unary_union

from .clipping import VoronoiCell, bisector_cell
from .delaunay import DelaunayMesh
from .geometry import Domain, in_circle

logger = structlog.get_logger()

__all__ = [
    "bisector_cell",
    "cell_polygon",
    "coverage_gap",
    "delaunay_violations",
    "hull_area",
    "overlapping_pairs",
    "ownership_violations",
    "reference_triangles",
]


def delaunay_violations(mesh: DelaunayMesh, tolerance: float = 1e-9) -> List[Tuple[int, int]]:
    """
    Find points strictly inside the circumcircle of a triangle.

    Args:
        mesh: Mesh to check
        tolerance: In-circle determinant slack

    Returns:
        (triangle, point) pairs violating the Delaunay property
    """
    violations = []
    points = mesh.points
    for t, (a, b, c) in enumerate(mesh.triangles):
        if mesh.degenerate[t]:
            continue
        center = mesh.circumcenters[t]
        radius = mesh.circumradii[t]
        # Only points near the circle can violate it
        near = np.nonzero(np.hypot(points[:, 0] - center[0], points[:, 1] - center[1]) < radius * (1 + 1e-6))[0]
        for p in near:
            if p in (a, b, c):
                continue
            if in_circle(points[a], points[b], points[c], points[p]) > tolerance:
                violations.append((t, int(p)))
    if violations:
        logger.warning("Delaunay violations found", count=len(violations))
    return violations


def reference_triangles(points: Sequence[Sequence[float]]) -> np.ndarray:
    """Triangles of the scipy (Qhull) triangulation, rows sorted for comparison."""
    tri = Delaunay(np.asarray(points, dtype=float))
    simplices = np.sort(tri.simplices, axis=1)
    return simplices[np.lexsort(simplices.T[::-1])]


def hull_area(points: Sequence[Sequence[float]]) -> float:
    # In 2D ConvexHull.volume is the enclosed area
    return float(ConvexHull(np.asarray(points, dtype=float)).volume)


def cell_polygon(cell: VoronoiCell) -> Polygon:
    return Polygon(cell.vertices) if len(cell.vertices) >= 3 else Polygon()


def coverage_gap(cells: Sequence[VoronoiCell], domain: Domain) -> float:
    """Area of the symmetric difference between the union of cells and the domain."""
    union = unary_union([cell_polygon(c) for c in cells])
    return float(union.symmetric_difference(box(*domain)).area)


def overlapping_pairs(cells: Sequence[VoronoiCell], tolerance: float = 1e-9) -> List[Tuple[int, int]]:
    """Seed id pairs whose cells share more than ``tolerance`` area."""
    polygons = [(c.seed_id, cell_polygon(c)) for c in cells]
    pairs = []
    for (i, p), (j, q) in combinations(polygons, 2):
        if p.is_empty or q.is_empty:
            continue
        if p.intersects(q) and p.intersection(q).area > tolerance:
            pairs.append((i, j))
    return pairs


def ownership_violations(cells: Sequence[VoronoiCell]) -> List[int]:
    """Seed ids whose own position is not strictly inside their cell."""
    return [c.seed_id for c in cells if not cell_polygon(c).contains(ShapelyPoint(c.seed))]
