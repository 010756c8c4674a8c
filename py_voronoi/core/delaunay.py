"""
Incremental Delaunay triangulation.

Seeds are inserted one at a time into a mesh bootstrapped from a super
triangle that encloses the domain. An insertion splits the containing
triangle (or the two triangles sharing the edge the seed lands on) and the
Delaunay property is then restored with Lawson edge flips.

Triangles live in an arena: a handle is an index into the triangle list,
and ``neighbors[k]`` is the handle of the triangle across side ``k``, the
directed edge ``vertices[k] -> vertices[(k + 1) % 3]``. Vertices are always
stored counter-clockwise.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..config import settings
from .errors import InsufficientSeedsError
from .geometry import Domain, Point, circumcircle, in_circle, normalize, orient2d

logger = structlog.get_logger()

NO_NEIGHBOR = -1


@dataclass
class Triangle:
    """Arena slot."""
    vertices: List[int]
    neighbors: List[int]
    circumcenter: Point
    circumradius: float
    alive: bool = True


@dataclass
class DelaunayMesh:
    """Read-only snapshot of a triangulation.

    Triangle rows index into ``points``; ``neighbors[t, k]`` is the triangle
    across the edge ``triangles[t, k] -> triangles[t, (k + 1) % 3]`` or -1 on
    the convex hull.
    """
    points: np.ndarray            # (n, 2) seed coordinates
    triangles: np.ndarray         # (m, 3) CCW vertex indices
    neighbors: np.ndarray         # (m, 3) triangle across each side, -1 on the hull
    circumcenters: np.ndarray     # (m, 2)
    circumradii: np.ndarray       # (m,)
    vertex_triangles: np.ndarray  # (n,) one incident triangle per vertex, -1 if none
    degenerate: np.ndarray        # (m,) near-zero-area flags

    @classmethod
    def empty(cls, points: Optional[np.ndarray] = None) -> "DelaunayMesh":
        points = np.zeros((0, 2)) if points is None else np.asarray(points, dtype=float).reshape(-1, 2)
        return cls(
            points=points,
            triangles=np.zeros((0, 3), dtype=np.int64),
            neighbors=np.zeros((0, 3), dtype=np.int64),
            circumcenters=np.zeros((0, 2)),
            circumradii=np.zeros(0),
            vertex_triangles=np.full(len(points), NO_NEIGHBOR, dtype=np.int64),
            degenerate=np.zeros(0, dtype=bool),
        )

    @property
    def n_points(self) -> int:
        return len(self.points)

    @property
    def n_triangles(self) -> int:
        return len(self.triangles)

    def local_index(self, t: int, vertex: int) -> int:
        row = self.triangles[t]
        for i in range(3):
            if row[i] == vertex:
                return i
        raise ValueError(f"Vertex {vertex} is not in triangle {t}")

    def incident_triangles(self, vertex: int) -> Tuple[List[int], bool]:
        """
        Triangles around a vertex in counter-clockwise order.

        Returns:
            (fan, closed) where closed is False for convex hull vertices; an
            open fan starts at the triangle holding the outgoing hull edge
        """
        start = int(self.vertex_triangles[vertex])
        if start == NO_NEIGHBOR:
            return [], False

        # Rotate clockwise until we hit the hull or come back around
        t = start
        closed = False
        for _ in range(self.n_triangles):
            i = self.local_index(t, vertex)
            prev = int(self.neighbors[t, i])
            if prev == NO_NEIGHBOR:
                break
            if prev == start:
                closed = True
                break
            t = prev

        first = start if closed else t
        fan = [first]
        t = first
        for _ in range(self.n_triangles):
            i = self.local_index(t, vertex)
            nxt = int(self.neighbors[t, (i + 2) % 3])
            if nxt == NO_NEIGHBOR or nxt == first:
                break
            fan.append(nxt)
            t = nxt
        return fan, closed

    def vertex_neighbors(self, vertex: int) -> List[int]:
        """Vertices sharing an edge with ``vertex``, counter-clockwise."""
        fan, closed = self.incident_triangles(vertex)
        result: List[int] = []
        for t in fan:
            i = self.local_index(t, vertex)
            for w in (int(self.triangles[t, (i + 1) % 3]), int(self.triangles[t, (i + 2) % 3])):
                if w not in result:
                    result.append(w)
        return result

    def hull_edges(self) -> List[Tuple[int, int]]:
        """Directed hull edges with the mesh on their left."""
        edges = []
        for t in range(self.n_triangles):
            for k in range(3):
                if self.neighbors[t, k] == NO_NEIGHBOR:
                    edges.append((int(self.triangles[t, k]), int(self.triangles[t, (k + 1) % 3])))
        return edges

    def hull_vertices(self) -> List[int]:
        """Convex hull vertices in counter-clockwise order."""
        successor = dict(self.hull_edges())
        if not successor:
            return []
        start = min(successor)
        order = [start]
        v = successor[start]
        while v != start and len(order) <= len(successor):
            order.append(v)
            v = successor[v]
        return order

    def area(self) -> float:
        p = self.points
        total = 0.0
        for a, b, c in self.triangles:
            total += orient2d(p[a], p[b], p[c]) / 2.0
        return total


def check_triangulable(points: np.ndarray, tolerance: float = 0.0) -> None:
    """
    Raise InsufficientSeedsError unless the points span a triangle.

    Args:
        points: Array of [x, y] coordinates
        tolerance: Orientation magnitude treated as collinear
    """
    n = len(points)
    if n < 3:
        raise InsufficientSeedsError(n)

    a = points[0]
    d2 = np.sum((points - a) ** 2, axis=1)
    j = int(np.argmax(d2))
    if d2[j] == 0.0:
        raise InsufficientSeedsError(n, "all seeds coincide")

    b = points[j]
    areas = (b[0] - a[0]) * (points[:, 1] - a[1]) - (b[1] - a[1]) * (points[:, 0] - a[0])
    if np.max(np.abs(areas)) <= tolerance:
        raise InsufficientSeedsError(n, "seeds are collinear")


class DelaunayTriangulator:
    """
    Builds the Delaunay triangulation of a fixed, ordered seed list.

    Seeds are inserted in index order, either all at once with
    ``triangulate()`` or one per ``insert_next()`` call. ``finalize()``
    discards the super triangle and freezes the mesh; after that
    ``move_vertex()`` can relocate interior seeds with local re-legalization.

    Super vertices are treated as points at infinity in fixed directions:
    their predicates use the limits of the finite ones, so the real
    triangles left after finalize cover the whole convex hull of the seeds.
    """

    def __init__(
        self,
        points: Sequence[Sequence[float]],
        domain: Optional[Domain] = None,
        in_circle_epsilon: Optional[float] = None,
        orientation_epsilon: Optional[float] = None,
        super_triangle_scale: Optional[float] = None,
    ):
        """
        Initialize the triangulator.

        Args:
            points: Seed coordinates in insertion order
            domain: Rectangle the seeds live in, used for scale and bootstrap
            in_circle_epsilon: In-circle tolerance, defaults to settings
            orientation_epsilon: Orientation tolerance, defaults to settings
            super_triangle_scale: Super triangle size relative to the domain

        Raises:
            InsufficientSeedsError: fewer than 3 non-collinear seeds
        """
        self.points = np.array(points, dtype=float).reshape(-1, 2)
        self.domain = domain or Domain.unit()
        in_circle_epsilon = settings.in_circle_epsilon if in_circle_epsilon is None else in_circle_epsilon
        orientation_epsilon = (
            settings.orientation_epsilon if orientation_epsilon is None else orientation_epsilon
        )
        scale_factor = super_triangle_scale or settings.super_triangle_scale

        # Tolerances follow the dimension of each predicate
        scale = self.domain.diagonal
        self._length_tol = orientation_epsilon * scale
        self._orient_tol = orientation_epsilon * scale ** 2
        self._circle_tol = in_circle_epsilon * scale ** 4

        check_triangulable(self.points, self._orient_tol)

        self.n_seeds = len(self.points)
        self._coords: List[Point] = [(float(x), float(y)) for x, y in self.points]
        self._coords.extend(self._super_vertices(scale_factor))
        ox, oy = self._origin
        self._directions: List[Point] = [
            normalize(x - ox, y - oy) for x, y in self._coords[self.n_seeds:]
        ]

        self._triangles: List[Triangle] = []
        self._last = 0
        self._mesh: Optional[DelaunayMesh] = None
        self._mesh_handles: List[int] = []

        self.inserted = 0
        self.finalized = False
        self.skipped: List[int] = []
        self.flips = 0

        s = self.n_seeds
        self._new_triangle([s, s + 1, s + 2], [NO_NEIGHBOR] * 3)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def _super_vertices(self, scale_factor: float) -> List[Point]:
        x_min = min(self.domain.x_min, float(self.points[:, 0].min()))
        x_max = max(self.domain.x_max, float(self.points[:, 0].max()))
        y_min = min(self.domain.y_min, float(self.points[:, 1].min()))
        y_max = max(self.domain.y_max, float(self.points[:, 1].max()))
        cx, cy = (x_min + x_max) / 2, (y_min + y_max) / 2
        self._origin = (cx, cy)
        m = scale_factor * max(x_max - x_min, y_max - y_min)
        return [(cx - 2 * m, cy - m), (cx + 2 * m, cy - m), (cx, cy + 2 * m)]

    def is_super(self, vertex: int) -> bool:
        return vertex >= self.n_seeds

    # ------------------------------------------------------------------
    # Arena helpers
    # ------------------------------------------------------------------

    def _new_triangle(self, vertices: List[int], neighbors: List[int]) -> int:
        center, radius = circumcircle(*(self._coords[v] for v in vertices))
        self._triangles.append(Triangle(list(vertices), list(neighbors), center, radius))
        return len(self._triangles) - 1

    def _set_triangle(self, t: int, vertices: List[int], neighbors: List[int]) -> None:
        tri = self._triangles[t]
        tri.vertices = list(vertices)
        tri.neighbors = list(neighbors)
        tri.circumcenter, tri.circumradius = circumcircle(*(self._coords[v] for v in vertices))

    def _refresh_circle(self, t: int) -> None:
        tri = self._triangles[t]
        tri.circumcenter, tri.circumradius = circumcircle(*(self._coords[v] for v in tri.vertices))

    def _replace_neighbor(self, t: int, old: int, new: int) -> None:
        if t == NO_NEIGHBOR:
            return
        neighbors = self._triangles[t].neighbors
        for k in range(3):
            if neighbors[k] == old:
                neighbors[k] = new
                return

    def _side_of(self, t: int, a: int, b: int) -> int:
        v = self._triangles[t].vertices
        for k in range(3):
            if v[k] == a and v[(k + 1) % 3] == b:
                return k
        raise ValueError(f"Edge {a}->{b} not found in triangle {t}")

    def _orientation(self, t: int) -> float:
        v = self._triangles[t].vertices
        return orient2d(self._coords[v[0]], self._coords[v[1]], self._coords[v[2]])

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def _orient(self, i: int, j: int, k: int) -> float:
        """
        Orientation of three vertices; super vertices act as points at infinity.

        Positive when (i, j, k) turns counter-clockwise.
        """
        s = self.n_seeds
        n_super = (i >= s) + (j >= s) + (k >= s)
        if n_super == 0:
            return orient2d(self._coords[i], self._coords[j], self._coords[k])

        # Cyclic rotations keep the sign
        if n_super == 1:
            while k < s:
                i, j, k = j, k, i
            x, y = self._coords[i], self._coords[j]
            d = self._directions[k - s]
            return (y[0] - x[0]) * d[1] - (y[1] - x[1]) * d[0]

        while i >= s and n_super == 2:
            i, j, k = j, k, i
        a, b = self._directions[j - s], self._directions[k - s]
        return a[0] * b[1] - a[1] * b[0]

    def _half_plane(self, vertices: List[int], p: int) -> bool:
        """Limit of the in-circle test for a triangle with one super vertex."""
        s = self.n_seeds
        i = next(n for n in range(3) if vertices[n] >= s)
        x, y = vertices[(i + 1) % 3], vertices[(i + 2) % 3]
        return self._orient(x, y, p) > self._orient_tol

    def _beyond(self, vertices: List[int], p: int) -> bool:
        """Limit of the in-circle test for a triangle with two super vertices.

        The circle tends to the half-plane through the real vertex facing the
        two directions.
        """
        s = self.n_seeds
        i = next(n for n in range(3) if vertices[n] < s)
        x = self._coords[vertices[i]]
        a = self._directions[vertices[(i + 1) % 3] - s]
        b = self._directions[vertices[(i + 2) % 3] - s]
        q = self._coords[p]
        return (q[0] - x[0]) * (a[0] + b[0]) + (q[1] - x[1]) * (a[1] + b[1]) > self._length_tol

    def _is_illegal(self, a: int, b: int, c: int, d: int) -> bool:
        """
        Whether edge a-b of triangle (a, b, c) should be flipped, d being the
        apex across it. Points on the circle count as outside.

        The test depends on the quad only, so both sides of an edge agree.
        """
        s = self.n_seeds
        if a >= s and b >= s:
            return False

        if a < s and b < s:
            # Real edges are only flipped between real triangles
            if c >= s or d >= s:
                return False
            ca, cb, cc, cd = (self._coords[w] for w in (a, b, c, d))
            return in_circle(ca, cb, cc, cd) > self._circle_tol

        if c >= s and d >= s:
            return False
        if c >= s:
            return self._beyond([a, b, c], d)
        if d >= s:
            return self._beyond([b, a, d], c)
        return self._half_plane([a, b, c], d)

    def _edge_hits(self, t: int, p: int) -> List[int]:
        v = self._triangles[t].vertices
        return [
            k for k in range(3)
            if abs(self._orient(v[k], v[(k + 1) % 3], p)) <= self._orient_tol
        ]

    def _contains(self, t: int, p: int) -> bool:
        v = self._triangles[t].vertices
        return all(self._orient(v[k], v[(k + 1) % 3], p) >= -self._orient_tol for k in range(3))

    # ------------------------------------------------------------------
    # Point location
    # ------------------------------------------------------------------

    def _locate(self, p: int) -> int:
        """Walk from the last touched triangle towards vertex p."""
        t = self._last
        if t >= len(self._triangles) or not self._triangles[t].alive:
            t = next(i for i, tri in enumerate(self._triangles) if tri.alive)

        limit = 4 * len(self._triangles) + 16
        for step in range(limit):
            tri = self._triangles[t]
            for offset in range(3):
                # Rotating the first side tested keeps degenerate walks from cycling
                k = (offset + step) % 3
                outside = self._orient(tri.vertices[k], tri.vertices[(k + 1) % 3], p) < -self._orient_tol
                if outside and tri.neighbors[k] != NO_NEIGHBOR:
                    t = tri.neighbors[k]
                    break
            else:
                return t

        logger.warning("Point location walk did not converge, scanning", seed=p)
        for i, tri in enumerate(self._triangles):
            if tri.alive and self._contains(i, p):
                return i
        raise RuntimeError(f"No triangle contains seed {p}")

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    @property
    def is_complete(self) -> bool:
        return self.inserted >= self.n_seeds

    def insert_next(self) -> int:
        """
        Insert the next seed in index order.

        Returns:
            Index of the inserted seed
        """
        if self.finalized or self.is_complete:
            raise RuntimeError("All seeds have already been inserted")
        index = self.inserted
        self._insert(index)
        self.inserted += 1
        return index

    def _insert(self, v: int) -> None:
        t = self._locate(v)
        hits = self._edge_hits(t, v)

        if len(hits) >= 2:
            logger.warning("Skipping seed coincident with an existing vertex", seed=v)
            self.skipped.append(v)
            return

        if hits:
            stack = self._split_edge(t, hits[0], v)
        else:
            stack = self._split_triangle(t, v)

        flips = self._legalize(stack)
        logger.debug("Seed inserted", seed=v, on_edge=bool(hits), flips=flips)

    def _split_triangle(self, t: int, p: int) -> List[Tuple[int, int]]:
        a, b, c = self._triangles[t].vertices
        n_ab, n_bc, n_ca = self._triangles[t].neighbors

        t1 = self._new_triangle([b, c, p], [n_bc, NO_NEIGHBOR, t])
        t2 = self._new_triangle([c, a, p], [n_ca, t, t1])
        self._triangles[t1].neighbors[1] = t2
        self._set_triangle(t, [a, b, p], [n_ab, t1, t2])

        self._replace_neighbor(n_bc, t, t1)
        self._replace_neighbor(n_ca, t, t2)
        self._last = t
        return [(t, 0), (t1, 0), (t2, 0)]

    def _split_edge(self, t: int, k: int, p: int) -> List[Tuple[int, int]]:
        tri = self._triangles[t]
        a, b, c = tri.vertices[k], tri.vertices[(k + 1) % 3], tri.vertices[(k + 2) % 3]
        u = tri.neighbors[k]
        n_bc, n_ca = tri.neighbors[(k + 1) % 3], tri.neighbors[(k + 2) % 3]
        self._last = t

        if u == NO_NEIGHBOR:
            t1 = self._new_triangle([p, b, c], [NO_NEIGHBOR, n_bc, t])
            self._set_triangle(t, [a, p, c], [NO_NEIGHBOR, t1, n_ca])
            self._replace_neighbor(n_bc, t, t1)
            return [(t, 2), (t1, 1)]

        j = self._side_of(u, b, a)
        ut = self._triangles[u]
        d = ut.vertices[(j + 2) % 3]
        u_ad, u_db = ut.neighbors[(j + 1) % 3], ut.neighbors[(j + 2) % 3]

        t1 = self._new_triangle([p, b, c], [u, n_bc, t])
        u1 = self._new_triangle([p, a, d], [t, u_ad, u])
        self._set_triangle(t, [a, p, c], [u1, t1, n_ca])
        self._set_triangle(u, [b, p, d], [t1, u1, u_db])

        self._replace_neighbor(n_bc, t, t1)
        self._replace_neighbor(u_ad, u, u1)
        return [(t, 2), (t1, 1), (u, 2), (u1, 1)]

    # ------------------------------------------------------------------
    # Legalization
    # ------------------------------------------------------------------

    def _legalize(self, stack: List[Tuple[int, int]]) -> int:
        """Flip illegal edges until every queued edge is locally Delaunay."""
        flips = 0
        limit = max(1000, 50 * len(self._triangles))
        while stack:
            t, k = stack.pop()
            tri = self._triangles[t]
            if not tri.alive:
                continue
            n = tri.neighbors[k]
            if n == NO_NEIGHBOR:
                continue

            a, b, c = tri.vertices[k], tri.vertices[(k + 1) % 3], tri.vertices[(k + 2) % 3]
            j = self._side_of(n, b, a)
            d = self._triangles[n].vertices[(j + 2) % 3]

            if not self._is_illegal(a, b, c, d):
                continue

            # Both replacement triangles must keep a positive orientation
            if self._orient(c, a, d) <= self._orient_tol or self._orient(d, b, c) <= self._orient_tol:
                continue

            t1, t2 = self._flip(t, k, n, j)
            flips += 1
            if flips > limit:
                logger.warning("Flip limit reached during legalization", limit=limit)
                break
            stack.extend([(t1, 0), (t1, 1), (t2, 0), (t2, 1)])

        self.flips += flips
        return flips

    def _flip(self, t: int, k: int, n: int, j: int) -> Tuple[int, int]:
        """
        Replace the diagonal shared by t (side k) and n (side j).

        (a, b, c) + (b, a, d) becomes (c, a, d) + (d, b, c), reusing both slots.
        """
        tri, nt = self._triangles[t], self._triangles[n]
        a, b, c = tri.vertices[k], tri.vertices[(k + 1) % 3], tri.vertices[(k + 2) % 3]
        d = nt.vertices[(j + 2) % 3]
        t_bc, t_ca = tri.neighbors[(k + 1) % 3], tri.neighbors[(k + 2) % 3]
        n_ad, n_db = nt.neighbors[(j + 1) % 3], nt.neighbors[(j + 2) % 3]

        self._set_triangle(t, [c, a, d], [t_ca, n_ad, n])
        self._set_triangle(n, [d, b, c], [n_db, t_bc, t])

        self._replace_neighbor(n_ad, n, t)
        self._replace_neighbor(t_bc, t, n)
        return t, n

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def triangulate(self) -> DelaunayMesh:
        """Insert every remaining seed and finalize."""
        while not self.is_complete:
            self.insert_next()
        return self.finalize()

    def finalize(self) -> DelaunayMesh:
        """Discard triangles touching the super triangle and freeze the mesh."""
        if self.finalized:
            return self.mesh
        if not self.is_complete:
            raise RuntimeError(f"Only {self.inserted} of {self.n_seeds} seeds inserted")

        removed = 0
        for t, tri in enumerate(self._triangles):
            if tri.alive and max(tri.vertices) >= self.n_seeds:
                tri.alive = False
                removed += 1
                for nb in tri.neighbors:
                    self._replace_neighbor(nb, t, NO_NEIGHBOR)

        self.finalized = True
        self._mesh = self._build_mesh()
        logger.info(
            "Triangulation complete",
            seeds=self.n_seeds,
            triangles=self._mesh.n_triangles,
            removed=removed,
            flips=self.flips,
            skipped=len(self.skipped),
        )
        return self._mesh

    @property
    def mesh(self) -> DelaunayMesh:
        """Current real triangles (super-triangle triangles are left out)."""
        if self._mesh is None or not self.finalized:
            return self._build_mesh()
        return self._mesh

    def _build_mesh(self) -> DelaunayMesh:
        s = self.n_seeds
        handles = [
            t for t, tri in enumerate(self._triangles)
            if tri.alive and max(tri.vertices) < s
        ]
        remap = {old: new for new, old in enumerate(handles)}
        m = len(handles)

        triangles = np.zeros((m, 3), dtype=np.int64)
        neighbors = np.full((m, 3), NO_NEIGHBOR, dtype=np.int64)
        centers = np.zeros((m, 2))
        radii = np.zeros(m)
        degenerate = np.zeros(m, dtype=bool)
        vertex_triangles = np.full(s, NO_NEIGHBOR, dtype=np.int64)

        for new, old in enumerate(handles):
            tri = self._triangles[old]
            triangles[new] = tri.vertices
            neighbors[new] = [remap.get(nb, NO_NEIGHBOR) for nb in tri.neighbors]
            centers[new] = tri.circumcenter
            radii[new] = tri.circumradius
            degenerate[new] = abs(self._orientation(old)) <= self._orient_tol
            for v in tri.vertices:
                if vertex_triangles[v] == NO_NEIGHBOR:
                    vertex_triangles[v] = new

        self._mesh_handles = handles
        return DelaunayMesh(
            points=np.array(self._coords[:s], dtype=float).reshape(-1, 2),
            triangles=triangles,
            neighbors=neighbors,
            circumcenters=centers,
            circumradii=radii,
            vertex_triangles=vertex_triangles,
            degenerate=degenerate,
        )

    # ------------------------------------------------------------------
    # Seed movement
    # ------------------------------------------------------------------

    def move_vertex(self, vertex: int, point: Sequence[float]) -> bool:
        """
        Move an interior seed and re-legalize around it.

        Returns:
            False (nothing changed) when the seed is on the convex hull or the
            move would fold one of its triangles; the caller should rebuild
        """
        if not self.finalized:
            return False

        mesh = self.mesh
        fan, closed = mesh.incident_triangles(vertex)
        if not closed:
            return False
        handles = [self._mesh_handles[i] for i in fan]

        previous = self._coords[vertex]
        self._coords[vertex] = (float(point[0]), float(point[1]))
        if any(self._orientation(t) <= self._orient_tol for t in handles):
            self._coords[vertex] = previous
            return False

        for t in handles:
            self._refresh_circle(t)
        self.points[vertex] = self._coords[vertex]

        flips = self._legalize([(t, k) for t in handles for k in range(3)])
        self._mesh = self._build_mesh()
        logger.debug("Seed moved", seed=vertex, flips=flips)
        return True
