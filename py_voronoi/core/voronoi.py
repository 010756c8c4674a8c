"""
Voronoi extraction from a Delaunay mesh.

Each seed's cell is the ring of circumcenters of its incident triangles,
read off by walking the triangle fan around the seed, so the vertices come
out counter-clockwise without sorting. Seeds on the convex hull have an
open fan; their cells are returned open, with the two unbounded Voronoi
edges described as rays, and are closed later by the boundary clipper.
"""

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Tuple

import numpy as np
import structlog

from .delaunay import DelaunayMesh
from .geometry import Point, distance, normalize

logger = structlog.get_logger()


class Ray(NamedTuple):
    """Unbounded Voronoi edge: origin plus unit direction."""
    origin: Point
    direction: Point

    def at(self, t: float) -> Point:
        return (self.origin[0] + t * self.direction[0], self.origin[1] + t * self.direction[1])


@dataclass
class RawCell:
    """Unclipped cell of one seed."""
    seed_index: int
    vertices: List[Point] = field(default_factory=list)   # circumcenters, CCW
    triangles: List[int] = field(default_factory=list)    # incident fan, CCW
    is_open: bool = False
    # Open cells only: rays leaving the first and the last vertex
    rays: Optional[Tuple[Ray, Ray]] = None

    @property
    def is_empty(self) -> bool:
        return not self.triangles


class VoronoiExtractor:
    """Extracts raw Voronoi cells from a finalized mesh."""

    def __init__(self, mesh: DelaunayMesh, tolerance: Optional[float] = None):
        """
        Args:
            mesh: Finalized Delaunay mesh
            tolerance: Distance under which consecutive circumcenters merge,
                defaults to 1e-12 of the point spread
        """
        self.mesh = mesh
        if tolerance is None:
            if mesh.n_points:
                spread = float(np.ptp(mesh.points, axis=0).max())
            else:
                spread = 1.0
            tolerance = 1e-12 * max(spread, 1.0)
        self.tolerance = tolerance

    def _merge(self, vertices: List[Point], closed: bool) -> List[Point]:
        merged: List[Point] = []
        for p in vertices:
            if merged and distance(merged[-1], p) <= self.tolerance:
                continue
            merged.append(p)
        if closed:
            while len(merged) > 1 and distance(merged[0], merged[-1]) <= self.tolerance:
                merged.pop()
        return merged

    def extract(self, vertex: int) -> RawCell:
        """
        Build the raw cell of one seed.

        Args:
            vertex: Seed index into the mesh points

        Returns:
            RawCell; empty when the seed is not part of any triangle
        """
        mesh = self.mesh
        fan, closed = mesh.incident_triangles(vertex)
        if not fan:
            logger.debug("Seed has no incident triangles", seed=vertex)
            return RawCell(seed_index=vertex)

        centers = [(float(x), float(y)) for x, y in mesh.circumcenters[fan]]
        cell = RawCell(
            seed_index=vertex,
            vertices=self._merge(centers, closed),
            triangles=list(fan),
            is_open=not closed,
        )

        if not closed:
            p = mesh.points
            first, last = fan[0], fan[-1]
            i = mesh.local_index(first, vertex)
            a = mesh.triangles[first, (i + 1) % 3]
            j = mesh.local_index(last, vertex)
            b = mesh.triangles[last, (j + 2) % 3]

            # Outward normals of the hull edges v->a and b->v (mesh on the left)
            out_a = normalize(p[a][1] - p[vertex][1], -(p[a][0] - p[vertex][0]))
            out_b = normalize(p[vertex][1] - p[b][1], -(p[vertex][0] - p[b][0]))
            cell.rays = (
                Ray(cell.vertices[0], out_a),
                Ray(cell.vertices[-1], out_b),
            )

        return cell

    def extract_all(self) -> List[RawCell]:
        cells = [self.extract(v) for v in range(self.mesh.n_points)]
        logger.debug(
            "Extracted raw cells",
            cells=len(cells),
            open=sum(1 for c in cells if c.is_open),
        )
        return cells
