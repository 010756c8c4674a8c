"""Tests for the seed set and seed generators."""

import math
from itertools import combinations

import pytest
import numpy as np
from py_voronoi.core import (
    Domain, SeedSet, SeedDistribution, generate_seeds,
    OutOfDomainError, TooCloseError, InvalidSeedError
)
from py_voronoi.utils.random import get_rng, set_random_seed


def min_pairwise_distance(points):
    return min(math.dist(p, q) for p, q in combinations(points, 2))


class TestSeedSetEditing:
    """Test add, move and remove."""

    @pytest.fixture
    def seeds(self):
        """Seed set with two seeds and 0.01 separation."""
        seed_set = SeedSet(min_separation=0.01)
        seed_set.add((0.2, 0.2))
        seed_set.add((0.5005, 0.5))
        return seed_set

    def test_ids_are_sequential(self, seeds):
        """Test that ids follow insertion order."""
        assert seeds.ids == [0, 1]
        assert seeds.add((0.9, 0.9)) == 2
        np.testing.assert_allclose(seeds.positions[2], [0.9, 0.9])

    def test_add_too_close(self, seeds):
        """Test adding next to an existing seed fails and leaves the set unchanged."""
        before = seeds.positions.copy()
        with pytest.raises(TooCloseError) as exc_info:
            seeds.add((0.5, 0.5))

        assert exc_info.value.neighbor_id == 1
        assert exc_info.value.distance == pytest.approx(0.0005)
        assert len(seeds) == 2
        np.testing.assert_array_equal(seeds.positions, before)

    def test_add_out_of_domain(self, seeds):
        """Test adding outside the domain fails."""
        with pytest.raises(OutOfDomainError):
            seeds.add((1.5, 0.5))
        with pytest.raises(OutOfDomainError):
            seeds.add((float("nan"), 0.5))
        assert len(seeds) == 2

    def test_boundary_point_accepted(self, seeds):
        """Test that points on the domain boundary are accepted."""
        seed_id = seeds.add((1.0, 0.0))
        assert seeds.get(seed_id) == (1.0, 0.0)

    def test_move(self, seeds):
        """Test a valid move."""
        assert seeds.move(0, (0.3, 0.3)) == (0.3, 0.3)
        assert seeds.get(0) == (0.3, 0.3)

    def test_rejected_move_reports_previous(self, seeds):
        """Test that a rejected move keeps the seed and reports where it is."""
        with pytest.raises(TooCloseError) as exc_info:
            seeds.move(0, (0.5, 0.5))
        assert exc_info.value.previous == (0.2, 0.2)
        assert seeds.get(0) == (0.2, 0.2)

        with pytest.raises(OutOfDomainError) as exc_info:
            seeds.move(0, (-0.1, 0.5))
        assert exc_info.value.previous == (0.2, 0.2)

    def test_move_ignores_itself(self, seeds):
        """Test that a tiny move is not rejected by the seed's own position."""
        seeds.move(1, (0.501, 0.5))
        assert seeds.get(1) == (0.501, 0.5)

    def test_try_move(self, seeds):
        """Test the non-raising move."""
        assert seeds.try_move(0, (0.5, 0.505)) == (False, (0.2, 0.2))
        assert seeds.try_move(0, (0.25, 0.2)) == (True, (0.25, 0.2))

    def test_remove_never_reuses_ids(self, seeds):
        """Test that removed ids are not handed out again."""
        seeds.remove(1)
        assert 1 not in seeds
        assert seeds.add((0.7, 0.7)) == 2
        assert seeds.ids == [0, 2]

    def test_unknown_id(self, seeds):
        """Test operations on unknown ids."""
        with pytest.raises(InvalidSeedError):
            seeds.get(42)
        with pytest.raises(InvalidSeedError):
            seeds.move(42, (0.1, 0.1))
        with pytest.raises(InvalidSeedError):
            seeds.remove(42)

    def test_nearest(self, seeds):
        """Test nearest-seed lookup."""
        seed_id, distance = seeds.nearest((0.25, 0.2))
        assert seed_id == 0
        assert distance == pytest.approx(0.05)
        assert seeds.nearest((0.25, 0.2), ignore=0)[0] == 1

    def test_negative_separation_rejected(self):
        """Test construction with an invalid margin."""
        with pytest.raises(ValueError):
            SeedSet(min_separation=-1)


class TestRandomize:
    """Test seed randomization."""

    def test_randomize_respects_separation(self):
        """Test that 20 randomized seeds keep 0.05 separation."""
        seeds = SeedSet(min_separation=0.05)
        ids = seeds.randomize(20, seed=7)

        assert len(ids) == 20
        assert len(seeds) == 20
        assert min_pairwise_distance(seeds.positions) >= 0.05
        assert np.all((seeds.positions >= 0) & (seeds.positions <= 1))

    def test_randomize_replaces_and_continues_ids(self):
        """Test that randomize replaces the set with fresh ids."""
        seeds = SeedSet()
        seeds.add((0.5, 0.5))
        ids = seeds.randomize(3, seed=1)
        assert ids == [1, 2, 3]
        assert 0 not in seeds

    def test_randomize_is_reproducible(self):
        """Test that the same integer seed gives the same layout."""
        a, b = SeedSet(), SeedSet()
        a.randomize(15, seed=123)
        b.randomize(15, seed=123)
        np.testing.assert_array_equal(a.positions, b.positions)

    def test_randomize_never_fails(self):
        """Test that an impossible separation still places every seed."""
        seeds = SeedSet(min_separation=0.9)
        ids = seeds.randomize(10, seed=3, max_attempts=5)
        assert len(ids) == 10

    @pytest.mark.parametrize("distribution", list(SeedDistribution))
    def test_distributions_stay_in_domain(self, distribution):
        """Test every layout strategy inside a non-unit domain."""
        domain = Domain(-2, 1, 2, 3)
        seeds = SeedSet(domain=domain, min_separation=0.01)
        seeds.randomize(25, seed=5, distribution=distribution)
        positions = seeds.positions
        assert np.all(positions[:, 0] >= -2) and np.all(positions[:, 0] <= 2)
        assert np.all(positions[:, 1] >= 1) and np.all(positions[:, 1] <= 3)


class TestGenerateSeeds:
    """Test the stateless generator."""

    def test_shape(self):
        """Test output shape."""
        assert generate_seeds(12).shape == (12, 2)
        assert generate_seeds(0).shape == (0, 2)

    def test_regular_one_per_cell(self):
        """Test that regular layouts put one seed in each grid cell."""
        points = generate_seeds(16, SeedDistribution.REGULAR, rng=np.random.default_rng(0))
        cells = {(int(x // 0.25), int(y // 0.25)) for x, y in points}
        assert len(cells) == 16

    def test_wave_layout(self):
        """Test that wave seeds sit on a sine curve through each cell."""
        points = generate_seeds(9, SeedDistribution.WAVE, rng=np.random.default_rng(0))
        cell = 1 / 3
        for i, (x, y) in enumerate(points):
            col, row = i % 3, (i // 3) % 3
            assert x == pytest.approx((col + 0.5) * cell)
            assert y == pytest.approx(row * cell + (math.sin(i) + 1) / 2 * cell)

    def test_shared_generator(self):
        """Test that the shared generator is reseeded by set_random_seed."""
        set_random_seed(99)
        first = generate_seeds(5)
        set_random_seed(99)
        np.testing.assert_array_equal(first, generate_seeds(5))
        assert get_rng() is get_rng()

    def test_negative_count(self):
        """Test invalid counts."""
        with pytest.raises(ValueError):
            generate_seeds(-1)
