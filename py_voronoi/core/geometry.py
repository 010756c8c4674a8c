"""Planar primitives: the domain rectangle, robust-enough predicates, polygons."""

import math
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]


class Domain(NamedTuple):
    """Axis-aligned rectangle seeds live in and cells are clipped to."""
    x_min: float = 0.0
    y_min: float = 0.0
    x_max: float = 1.0
    y_max: float = 1.0

    @classmethod
    def unit(cls) -> "Domain":
        return cls(0.0, 0.0, 1.0, 1.0)

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def diagonal(self) -> float:
        return math.hypot(self.width, self.height)

    @property
    def center(self) -> Point:
        return ((self.x_min + self.x_max) / 2, (self.y_min + self.y_max) / 2)

    @property
    def corners(self) -> List[Point]:
        """Corners in counter-clockwise order starting bottom-left."""
        return [
            (self.x_min, self.y_min),
            (self.x_max, self.y_min),
            (self.x_max, self.y_max),
            (self.x_min, self.y_max),
        ]

    def edges(self) -> List[Tuple[Point, Point]]:
        """Boundary edges, CCW, so the interior is on the left of each."""
        c = self.corners
        return [(c[i], c[(i + 1) % 4]) for i in range(4)]

    def contains(self, point: Sequence[float], tolerance: float = 0.0) -> bool:
        x, y = point[0], point[1]
        return (self.x_min - tolerance <= x <= self.x_max + tolerance
                and self.y_min - tolerance <= y <= self.y_max + tolerance)

    def validate(self) -> "Domain":
        if not (self.width > 0 and self.height > 0):
            raise ValueError(f"Degenerate domain {tuple(self)}")
        return self


def orient2d(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> float:
    """Twice the signed area of (a, b, c); positive when c is left of a->b."""
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def in_circle(a: Sequence[float], b: Sequence[float], c: Sequence[float],
              d: Sequence[float]) -> float:
    """
    In-circle determinant for a counter-clockwise triangle (a, b, c).

    Returns:
        Positive if d lies inside the circumcircle, negative if outside,
        (near) zero if the four points are co-circular
    """
    adx, ady = a[0] - d[0], a[1] - d[1]
    bdx, bdy = b[0] - d[0], b[1] - d[1]
    cdx, cdy = c[0] - d[0], c[1] - d[1]

    ad = adx * adx + ady * ady
    bd = bdx * bdx + bdy * bdy
    cd = cdx * cdx + cdy * cdy

    return (adx * (bdy * cd - bd * cdy)
            - ady * (bdx * cd - bd * cdx)
            + ad * (bdx * cdy - bdy * cdx))


def circumcircle(a: Sequence[float], b: Sequence[float],
                 c: Sequence[float]) -> Tuple[Point, float]:
    """
    Circumcenter and circumradius of a triangle.

    For an exactly collinear triple the center falls back to the midpoint of
    the longest side and the radius is infinite.
    """
    bx, by = b[0] - a[0], b[1] - a[1]
    cx, cy = c[0] - a[0], c[1] - a[1]
    d = 2.0 * (bx * cy - by * cx)

    if d == 0.0:
        pairs = [(a, b), (b, c), (c, a)]
        p, q = max(pairs, key=lambda pq: (pq[0][0] - pq[1][0]) ** 2 + (pq[0][1] - pq[1][1]) ** 2)
        return ((p[0] + q[0]) / 2, (p[1] + q[1]) / 2), math.inf

    b2 = bx * bx + by * by
    c2 = cx * cx + cy * cy
    ux = (cy * b2 - by * c2) / d
    uy = (bx * c2 - cx * b2) / d
    return (a[0] + ux, a[1] + uy), math.hypot(ux, uy)


def distance(p: Sequence[float], q: Sequence[float]) -> float:
    return math.hypot(p[0] - q[0], p[1] - q[1])


def polygon_area(vertices: Sequence[Sequence[float]]) -> float:
    """Signed shoelace area; positive for counter-clockwise vertex order."""
    n = len(vertices)
    if n < 3:
        return 0.0
    area = 0.0
    for i in range(n):
        j = (i + 1) % n
        area += vertices[i][0] * vertices[j][1] - vertices[j][0] * vertices[i][1]
    return area / 2.0


def polygon_centroid(vertices: Sequence[Sequence[float]]) -> np.ndarray:
    """Area-weighted centroid; the vertex mean when the polygon has no area."""
    ring = np.asarray(vertices, dtype=float).reshape(-1, 2)
    area = polygon_area(ring)
    if abs(area) <= 1e-15:
        return ring.mean(axis=0)

    x, y = ring[:, 0], ring[:, 1]
    x_next, y_next = np.roll(x, -1), np.roll(y, -1)
    cross = x * y_next - x_next * y
    return np.array([np.dot(x + x_next, cross), np.dot(y + y_next, cross)]) / (6.0 * area)


def point_in_convex_polygon(point: Sequence[float], vertices: Sequence[Sequence[float]],
                            tolerance: float = 0.0) -> bool:
    """True if point is inside (or within tolerance of) a CCW convex polygon."""
    n = len(vertices)
    if n < 3:
        return False
    for i in range(n):
        if orient2d(vertices[i], vertices[(i + 1) % n], point) < -tolerance:
            return False
    return True


def dedupe_ring(vertices: Sequence[Sequence[float]], tolerance: float = 1e-12) -> List[Point]:
    """Drop consecutive (and wrap-around) duplicate vertices of a closed ring."""
    ring: List[Point] = []
    for v in vertices:
        p = (float(v[0]), float(v[1]))
        if ring and distance(ring[-1], p) <= tolerance:
            continue
        ring.append(p)
    while len(ring) > 1 and distance(ring[0], ring[-1]) <= tolerance:
        ring.pop()
    return ring


def normalize(vx: float, vy: float) -> Optional[Point]:
    length = math.hypot(vx, vy)
    if length == 0.0:
        return None
    return (vx / length, vy / length)
