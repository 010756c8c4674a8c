"""
Seed set: the ordered, separation-constrained point collection the
triangulation is built from, plus the seed layout generators.
"""

import math
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..config import settings
from ..utils.random import get_rng, set_random_seed
from .errors import InvalidSeedError, OutOfDomainError, TooCloseError
from .geometry import Domain, Point

logger = structlog.get_logger()


class SeedDistribution(str, Enum):
    """Seed layout strategies."""

    RANDOM = "random"    # uniform over the domain
    REGULAR = "regular"  # one jittered sample per cell of a NxN grid
    WAVE = "wave"        # samples along a sine wave across the grid


def _grid_cell(index: int, rows: int) -> Tuple[int, int]:
    return index % rows, (index // rows) % rows


def _propose(
    index: int,
    count: int,
    distribution: SeedDistribution,
    rng: np.random.Generator,
    domain: Domain,
    attempt: int = 0,
) -> Point:
    """Draw one candidate position for the index-th seed."""
    if distribution == SeedDistribution.RANDOM:
        return (
            domain.x_min + rng.random() * domain.width,
            domain.y_min + rng.random() * domain.height,
        )

    rows = max(1, int(math.floor(math.sqrt(count))))
    cell_w = domain.width / rows
    cell_h = domain.height / rows
    col, row = _grid_cell(index, rows)
    origin_x = domain.x_min + col * cell_w
    origin_y = domain.y_min + row * cell_h

    if distribution == SeedDistribution.WAVE and attempt == 0:
        return (
            origin_x + 0.5 * cell_w,
            origin_y + (math.sin(index) + 1) / 2 * cell_h,
        )

    return (origin_x + rng.random() * cell_w, origin_y + rng.random() * cell_h)


def generate_seeds(
    count: int,
    distribution: SeedDistribution = SeedDistribution.RANDOM,
    rng: Optional[np.random.Generator] = None,
    domain: Optional[Domain] = None,
) -> np.ndarray:
    """
    Generate seed positions without enforcing any separation.

    Args:
        count: Number of seeds
        distribution: Layout strategy
        rng: Generator to draw from, defaults to the shared one
        domain: Target rectangle, defaults to the unit square

    Returns:
        Array of [x, y] coordinates, shape (count, 2)
    """
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    rng = rng or get_rng()
    domain = domain or Domain.unit()
    distribution = SeedDistribution(distribution)
    points = [_propose(i, count, distribution, rng, domain) for i in range(count)]
    return np.array(points, dtype=float).reshape(-1, 2)


class SeedSet:
    """
    Ordered seed collection confined to a domain.

    Seeds are identified by integer ids that are never reused, so an id
    stays valid (and keeps its place in the ordering) until the seed is
    removed. Every accepted position is inside the domain and at least
    ``min_separation`` away from every other live seed.
    """

    def __init__(self, domain: Optional[Domain] = None, min_separation: Optional[float] = None):
        self.domain = (domain or Domain.unit()).validate()
        self.min_separation = (
            settings.min_separation if min_separation is None else float(min_separation)
        )
        if self.min_separation < 0:
            raise ValueError("min_separation must be non-negative")
        self._positions: Dict[int, Point] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, seed_id: object) -> bool:
        return seed_id in self._positions

    def __iter__(self) -> Iterator[int]:
        return iter(self.ids)

    @property
    def ids(self) -> List[int]:
        """Live seed ids in ascending (insertion) order."""
        return sorted(self._positions)

    @property
    def positions(self) -> np.ndarray:
        """Live seed positions ordered like ``ids``, shape (n, 2)."""
        return np.array([self._positions[i] for i in self.ids], dtype=float).reshape(-1, 2)

    def get(self, seed_id: int) -> Point:
        try:
            return self._positions[seed_id]
        except KeyError:
            raise InvalidSeedError(seed_id) from None

    def items(self) -> List[Tuple[int, Point]]:
        return [(i, self._positions[i]) for i in self.ids]

    def nearest(self, point: Sequence[float], ignore: Optional[int] = None) -> Tuple[Optional[int], float]:
        """Closest live seed to point (excluding ``ignore``) and its distance."""
        best_id, best = None, math.inf
        for seed_id, pos in self._positions.items():
            if seed_id == ignore:
                continue
            d = math.hypot(pos[0] - point[0], pos[1] - point[1])
            if d < best:
                best_id, best = seed_id, d
        return best_id, best

    def check(self, point: Sequence[float], ignore: Optional[int] = None,
              previous: Optional[Point] = None) -> Point:
        """
        Validate a candidate position against the domain and separation.

        Returns:
            The point as a float tuple

        Raises:
            OutOfDomainError: point outside the domain
            TooCloseError: point within min_separation of another seed
        """
        p = (float(point[0]), float(point[1]))
        if not (math.isfinite(p[0]) and math.isfinite(p[1])) or not self.domain.contains(p):
            raise OutOfDomainError(p, previous=previous)
        neighbor_id, d = self.nearest(p, ignore=ignore)
        if neighbor_id is not None and d < self.min_separation:
            raise TooCloseError(p, neighbor_id, d, self.min_separation, previous=previous)
        return p

    def add(self, point: Sequence[float]) -> int:
        """Add a seed and return its id."""
        p = self.check(point)
        seed_id = self._next_id
        self._next_id += 1
        self._positions[seed_id] = p
        logger.debug("Seed added", seed_id=seed_id, x=p[0], y=p[1])
        return seed_id

    def move(self, seed_id: int, point: Sequence[float]) -> Point:
        """
        Move a seed.

        Rejected moves raise with ``previous`` set to the unchanged position.

        Returns:
            The new position
        """
        previous = self.get(seed_id)
        p = self.check(point, ignore=seed_id, previous=previous)
        self._positions[seed_id] = p
        return p

    def try_move(self, seed_id: int, point: Sequence[float]) -> Tuple[bool, Point]:
        """Move if allowed; returns (moved, position held after the call)."""
        try:
            return True, self.move(seed_id, point)
        except (OutOfDomainError, TooCloseError) as exc:
            return False, exc.previous

    def remove(self, seed_id: int) -> Point:
        """Remove a seed; its id is never handed out again."""
        position = self.get(seed_id)
        del self._positions[seed_id]
        logger.debug("Seed removed", seed_id=seed_id)
        return position

    def clear(self) -> None:
        self._positions = {}

    def randomize(
        self,
        count: int,
        seed: Optional[int] = None,
        distribution: SeedDistribution = SeedDistribution.RANDOM,
        max_attempts: Optional[int] = None,
    ) -> List[int]:
        """
        Replace the set with ``count`` sampled seeds.

        Candidates are drawn from ``distribution`` and rejected while they
        violate the separation; once ``max_attempts`` draws are used up the
        candidate with the largest clearance is kept, so the call never fails.

        Args:
            count: Number of seeds to place
            seed: Optional integer seed for reproducible layouts
            distribution: Layout strategy
            max_attempts: Draws per seed, defaults to settings.max_sample_attempts

        Returns:
            Ids of the new seeds
        """
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        distribution = SeedDistribution(distribution)
        max_attempts = max_attempts or settings.max_sample_attempts
        if seed is not None:
            set_random_seed(seed)
        rng = get_rng()

        accepted = np.empty((0, 2), dtype=float)
        fallbacks = 0
        for i in range(count):
            best, best_clearance = None, -1.0
            for attempt in range(max_attempts):
                candidate = _propose(i, count, distribution, rng, self.domain, attempt)
                if len(accepted):
                    clearance = float(np.min(np.hypot(accepted[:, 0] - candidate[0],
                                                      accepted[:, 1] - candidate[1])))
                else:
                    clearance = math.inf
                if clearance > best_clearance:
                    best, best_clearance = candidate, clearance
                if clearance >= self.min_separation:
                    break
            else:
                fallbacks += 1
            accepted = np.vstack([accepted, best])

        self._positions = {}
        new_ids = []
        for x, y in accepted:
            seed_id = self._next_id
            self._next_id += 1
            self._positions[seed_id] = (float(x), float(y))
            new_ids.append(seed_id)

        logger.info("Seeds randomized", count=count, distribution=distribution.value,
                    fallbacks=fallbacks, seed=seed)
        return new_ids
