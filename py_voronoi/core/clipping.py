"""
Boundary clipping of raw Voronoi cells.

Open cells are first closed by pushing their two rays far past the domain
and joining them through an apex on the outside; every cell is then cut
against the four domain edges with Sutherland-Hodgman.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import structlog

from ..config import settings
from .geometry import (
    Domain,
    Point,
    dedupe_ring,
    distance,
    normalize,
    orient2d,
    point_in_convex_polygon,
    polygon_area,
    polygon_centroid,
)
from .voronoi import RawCell

logger = structlog.get_logger()


@dataclass
class VoronoiCell:
    """Closed, clipped cell owned by one seed."""
    seed_id: int
    seed: Point
    vertices: np.ndarray  # (k, 2) counter-clockwise ring, not repeated at the end
    is_open: bool = False  # the cell was unbounded before clipping

    @property
    def area(self) -> float:
        return polygon_area(self.vertices)

    @property
    def centroid(self) -> np.ndarray:
        if len(self.vertices) == 0:
            return np.array(self.seed, dtype=float)
        return polygon_centroid(self.vertices)

    def contains(self, point: Sequence[float], tolerance: float = 0.0) -> bool:
        return point_in_convex_polygon(point, self.vertices, tolerance)

    def __len__(self) -> int:
        return len(self.vertices)


def clip_halfplane(vertices: Sequence[Sequence[float]], a: Point, b: Point,
                   tolerance: float = 0.0) -> List[Point]:
    """
    Keep the part of a polygon on the left of the directed line a->b.

    Args:
        vertices: Polygon ring
        a: Start of the clipping line
        b: End of the clipping line
        tolerance: Orientation slack counted as inside

    Returns:
        Clipped ring (possibly empty)
    """
    out: List[Point] = []
    n = len(vertices)
    if n == 0:
        return out

    for i in range(n):
        p = vertices[i]
        q = vertices[(i + 1) % n]
        sp = orient2d(a, b, p)
        sq = orient2d(a, b, q)
        p_in = sp >= -tolerance
        q_in = sq >= -tolerance

        if p_in and q_in:
            out.append((float(q[0]), float(q[1])))
        elif p_in and not q_in:
            t = sp / (sp - sq)
            out.append((p[0] + t * (q[0] - p[0]), p[1] + t * (q[1] - p[1])))
        elif not p_in and q_in:
            t = sp / (sp - sq)
            out.append((p[0] + t * (q[0] - p[0]), p[1] + t * (q[1] - p[1])))
            out.append((float(q[0]), float(q[1])))
    return out


def sutherland_hodgman(vertices: Sequence[Sequence[float]], domain: Domain,
                       tolerance: float = 0.0) -> List[Point]:
    """Clip a polygon against every edge of the domain rectangle."""
    ring = [(float(x), float(y)) for x, y in vertices]
    for a, b in domain.edges():
        ring = clip_halfplane(ring, a, b, tolerance)
        if not ring:
            break
    return ring


def bisector_cell(index: int, points: Sequence[Sequence[float]], domain: Domain) -> List[Point]:
    """
    Cell of one point built directly from perpendicular bisectors.

    Starts from the domain rectangle and keeps the half-plane closer to the
    point for every other point. Quadratic, used as a reference and as the
    fallback for seeds the triangulation could not place.
    """
    pi = points[index]
    ring: List[Point] = list(domain.corners)
    for j, pj in enumerate(points):
        if j == index or (pj[0] == pi[0] and pj[1] == pi[1]):
            continue
        mx, my = (pi[0] + pj[0]) / 2, (pi[1] + pj[1]) / 2
        # Bisector directed so that pi lies on its left
        dx, dy = pj[0] - pi[0], pj[1] - pi[1]
        a = (mx, my)
        b = (mx - dy, my + dx)
        ring = clip_halfplane(ring, a, b)
        if not ring:
            break
    return ring


class BoundaryClipper:
    """Turns raw cells into closed polygons inside the domain."""

    def __init__(self, domain: Optional[Domain] = None, ray_extension: Optional[float] = None):
        """
        Args:
            domain: Clip rectangle, defaults to the unit square
            ray_extension: Open-cell ray length in domain diagonals
        """
        self.domain = (domain or Domain.unit()).validate()
        self.ray_extension = ray_extension or settings.ray_extension
        self.tolerance = 1e-12 * self.domain.diagonal ** 2

    def close(self, raw: RawCell) -> List[Point]:
        """
        Closed ring for a raw cell.

        Open cells get a far point on each ray plus an apex between them, all
        beyond the domain, so clipping recovers the true cell inside it.
        """
        if not raw.is_open:
            return list(raw.vertices)

        first, last = raw.rays
        center = self.domain.center
        reach = self.ray_extension * self.domain.diagonal
        reach += max(distance(v, center) for v in raw.vertices)

        far_first = first.at(reach)
        far_last = last.at(reach)

        direction = normalize(
            first.direction[0] + last.direction[0],
            first.direction[1] + last.direction[1],
        )
        if direction is None:
            direction = (-last.direction[1], last.direction[0])
        mid = ((far_first[0] + far_last[0]) / 2, (far_first[1] + far_last[1]) / 2)
        apex = (mid[0] + 2 * reach * direction[0], mid[1] + 2 * reach * direction[1])

        return [far_first] + list(raw.vertices) + [far_last, apex]

    def _snap(self, ring: Sequence[Sequence[float]]) -> List[Point]:
        """Clamp onto the domain, then drop repeated and collinear vertices."""
        d = self.domain
        ring = dedupe_ring(
            [(min(max(x, d.x_min), d.x_max), min(max(y, d.y_min), d.y_max)) for x, y in ring],
            tolerance=1e-12 * d.diagonal,
        )
        changed = True
        while changed and len(ring) > 3:
            changed = False
            for i in range(len(ring)):
                prev, nxt = ring[i - 1], ring[(i + 1) % len(ring)]
                if abs(orient2d(prev, ring[i], nxt)) <= self.tolerance:
                    del ring[i]
                    changed = True
                    break
        return ring

    def clip(self, vertices: Sequence[Sequence[float]]) -> List[Point]:
        """Clip a closed ring to the domain; every output vertex lies inside it."""
        return self._snap(sutherland_hodgman(vertices, self.domain, self.tolerance))

    def clip_cell(
        self,
        raw: RawCell,
        seed: Sequence[float],
        seed_id: Optional[int] = None,
        points: Optional[Sequence[Sequence[float]]] = None,
    ) -> VoronoiCell:
        """
        Close and clip one raw cell.

        Args:
            raw: Cell from the extractor
            seed: Position of the owning seed
            seed_id: Public id of the seed, defaults to its index
            points: All seed positions, used to build a bisector cell when the
                raw cell is empty

        Returns:
            VoronoiCell with a counter-clockwise ring inside the domain
        """
        seed = (float(seed[0]), float(seed[1]))
        seed_id = raw.seed_index if seed_id is None else seed_id

        if raw.is_empty or len(raw.vertices) < (1 if raw.is_open else 3):
            if points is None:
                ring: List[Point] = []
            else:
                logger.warning("Falling back to bisector cell", seed=seed_id)
                ring = self._snap(bisector_cell(raw.seed_index, points, self.domain))
        else:
            ring = self.clip(self.close(raw))

        if len(ring) >= 3 and polygon_area(ring) < 0:
            ring.reverse()

        return VoronoiCell(
            seed_id=seed_id,
            seed=seed,
            vertices=np.array(ring, dtype=float).reshape(-1, 2),
            is_open=raw.is_open,
        )
