"""Error taxonomy for the seed set and the construction pipeline.

Every error is raised before anything is mutated, so callers can catch it
and carry on with the previous state.
"""

from typing import Optional, Tuple

Point = Tuple[float, float]


class VoronoiError(Exception):
    """Base class for recoverable engine errors."""


class OutOfDomainError(VoronoiError, ValueError):
    """Point lies outside the configured domain."""

    def __init__(self, point: Point, previous: Optional[Point] = None):
        self.point = point
        self.previous = previous
        super().__init__(f"Point ({point[0]:.6g}, {point[1]:.6g}) lies outside the domain")


class TooCloseError(VoronoiError, ValueError):
    """Point violates the minimum seed separation."""

    def __init__(
        self,
        point: Point,
        neighbor_id: int,
        distance: float,
        min_separation: float,
        previous: Optional[Point] = None,
    ):
        self.point = point
        self.neighbor_id = neighbor_id
        self.distance = distance
        self.min_separation = min_separation
        self.previous = previous
        super().__init__(
            f"Point ({point[0]:.6g}, {point[1]:.6g}) is {distance:.6g} from seed "
            f"{neighbor_id}, closer than {min_separation:.6g}"
        )


class InsufficientSeedsError(VoronoiError, ValueError):
    """Fewer than three non-collinear seeds."""

    def __init__(self, count: int, reason: str = "at least 3 non-collinear seeds are required"):
        self.count = count
        super().__init__(f"Cannot triangulate {count} seeds: {reason}")


class InvalidSeedError(VoronoiError, KeyError):
    """Seed id is unknown or was removed."""

    def __init__(self, seed_id: int):
        self.seed_id = seed_id
        super().__init__(seed_id)

    def __str__(self) -> str:
        return f"Unknown seed id {self.seed_id}"
