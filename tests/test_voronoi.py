"""Tests for raw Voronoi cell extraction."""

import pytest
import numpy as np
from scipy.spatial import Voronoi
from py_voronoi.core import DelaunayMesh, DelaunayTriangulator, VoronoiExtractor
from py_voronoi.core.geometry import point_in_convex_polygon, polygon_area


SQUARE_SEEDS = [(0.25, 0.25), (0.75, 0.25), (0.25, 0.75), (0.75, 0.75)]


def sorted_rows(values):
    rows = np.asarray(values, dtype=float)
    return rows[np.lexsort(rows.T[::-1])]


@pytest.fixture
def random_mesh():
    """Delaunay mesh of 80 random points."""
    points = np.random.default_rng(21).random((80, 2))
    return DelaunayTriangulator(points).triangulate()


class TestSquareCells:
    """Test the four-seed square, where all circumcenters coincide."""

    @pytest.fixture
    def cells(self):
        mesh = DelaunayTriangulator(SQUARE_SEEDS).triangulate()
        return VoronoiExtractor(mesh).extract_all()

    def test_every_cell_is_open(self, cells):
        """Test that all four hull seeds get open cells."""
        assert len(cells) == 4
        assert all(cell.is_open for cell in cells)

    def test_shared_center_is_merged(self, cells):
        """Test that the coincident circumcenters collapse to one vertex."""
        for cell in cells:
            assert len(cell.vertices) == 1
            assert cell.vertices[0] == pytest.approx((0.5, 0.5))

    def test_rays_are_outward_hull_normals(self, cells):
        """Test the ray directions of the lower-left seed."""
        first, last = cells[0].rays
        assert first.origin == pytest.approx((0.5, 0.5))
        assert first.direction == pytest.approx((0.0, -1.0))
        assert last.direction == pytest.approx((-1.0, 0.0))
        assert first.at(2.0) == pytest.approx((0.5, -1.5))


class TestRandomCells:
    """Test extraction on a random mesh."""

    def test_open_cells_are_hull_seeds(self, random_mesh):
        """Test that exactly the hull seeds have open cells."""
        cells = VoronoiExtractor(random_mesh).extract_all()
        hull = set(random_mesh.hull_vertices())
        assert {c.seed_index for c in cells if c.is_open} == hull
        assert sum(1 for c in cells if not c.is_open) == random_mesh.n_points - len(hull)

    def test_closed_cells_are_counter_clockwise(self, random_mesh):
        """Test winding and seed ownership of closed cells."""
        for cell in VoronoiExtractor(random_mesh).extract_all():
            if cell.is_open:
                continue
            assert cell.rays is None
            assert polygon_area(cell.vertices) > 0
            assert point_in_convex_polygon(random_mesh.points[cell.seed_index], cell.vertices)

    def test_closed_cells_match_scipy(self, random_mesh):
        """Test closed cell vertices against the Qhull Voronoi diagram."""
        reference = Voronoi(random_mesh.points)
        for cell in VoronoiExtractor(random_mesh).extract_all():
            region = reference.regions[reference.point_region[cell.seed_index]]
            if cell.is_open:
                assert -1 in region
                continue
            assert -1 not in region
            np.testing.assert_allclose(
                sorted_rows(cell.vertices),
                sorted_rows(reference.vertices[region]),
                atol=1e-9,
            )

    def test_rays_leave_the_hull(self, random_mesh):
        """Test that each ray points away from the seed set."""
        center = random_mesh.points.mean(axis=0)
        for cell in VoronoiExtractor(random_mesh).extract_all():
            if not cell.is_open:
                continue
            seed = random_mesh.points[cell.seed_index]
            for ray in cell.rays:
                assert np.hypot(*ray.direction) == pytest.approx(1.0)
                assert np.dot(ray.direction, seed - center) > 0

    def test_fan_matches_triangles(self, random_mesh):
        """Test that each cell lists the triangles incident to its seed."""
        extractor = VoronoiExtractor(random_mesh)
        for v in range(0, random_mesh.n_points, 7):
            cell = extractor.extract(v)
            incident = {t for t in range(random_mesh.n_triangles) if v in random_mesh.triangles[t]}
            assert set(cell.triangles) == incident


class TestEmptyCells:
    """Test seeds without triangles."""

    def test_skipped_duplicate_has_empty_cell(self):
        """Test that a skipped seed yields an empty raw cell."""
        points = [(0.1, 0.1), (0.9, 0.1), (0.5, 0.9), (0.1, 0.1)]
        mesh = DelaunayTriangulator(points).triangulate()
        cell = VoronoiExtractor(mesh).extract(3)
        assert cell.is_empty
        assert cell.vertices == []
        assert not cell.is_open

    def test_empty_mesh(self):
        """Test extraction from an empty mesh."""
        assert VoronoiExtractor(DelaunayMesh.empty()).extract_all() == []
