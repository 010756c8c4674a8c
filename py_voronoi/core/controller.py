"""
Construction controller.

Drives the pipeline seeds -> triangulation -> raw cells -> clipped cells,
either in one ``run()`` call or one unit of work per ``step()`` call for
animated display. Registered listeners are told about every change to the
seeds, the mesh or the cells.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .clipping import BoundaryClipper, VoronoiCell
from .delaunay import DelaunayMesh, DelaunayTriangulator
from .errors import InsufficientSeedsError, OutOfDomainError, TooCloseError
from .geometry import Domain, Point
from .seeds import SeedDistribution, SeedSet
from .voronoi import VoronoiExtractor

logger = structlog.get_logger()


class ConstructionState(str, Enum):
    """Pipeline stages."""

    EMPTY = "empty"
    TRIANGULATING = "triangulating"
    TRIANGULATED = "triangulated"
    EXTRACTING = "extracting"
    COMPLETE = "complete"


class ChangeKind(str, Enum):
    """What a change notification is about."""

    SEEDS = "seeds"
    MESH = "mesh"
    CELLS = "cells"
    RESET = "reset"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    state: ConstructionState
    seed_id: Optional[int] = None


Listener = Callable[[ChangeEvent], None]


@dataclass
class ConstructionResult:
    """Output of a completed construction."""
    seed_ids: List[int]
    positions: np.ndarray
    mesh: DelaunayMesh
    cells: List[VoronoiCell]

    @property
    def triangles(self) -> np.ndarray:
        return self.mesh.triangles


class ConstructionController:
    """
    Owns a seed set and the triangulation and cells derived from it.

    Structural seed changes (add, remove, randomize) mark the construction
    stale; the next ``run()`` or ``step()`` starts over from EMPTY. Moving a
    seed after triangulation re-legalizes the mesh locally instead.

    Triangle index triples and cell order follow ascending seed ids, the
    same order as ``positions`` and ``seed_ids``.
    """

    def __init__(
        self,
        domain: Optional[Domain] = None,
        min_separation: Optional[float] = None,
        ray_extension: Optional[float] = None,
        in_circle_epsilon: Optional[float] = None,
        orientation_epsilon: Optional[float] = None,
        super_triangle_scale: Optional[float] = None,
    ):
        """
        Initialize the controller.

        Args:
            domain: Rectangle seeds live in, defaults to the unit square
            min_separation: Minimum distance between seeds
            ray_extension: Open-cell ray length in domain diagonals
            in_circle_epsilon: In-circle tolerance for the triangulator
            orientation_epsilon: Orientation tolerance for the triangulator
            super_triangle_scale: Super triangle size relative to the domain

        Unset options fall back to ``py_voronoi.config.settings``.
        """
        self.domain = (domain or Domain.unit()).validate()
        self.seeds = SeedSet(self.domain, min_separation)
        self.clipper = BoundaryClipper(self.domain, ray_extension)
        self._triangulator_options = {
            "in_circle_epsilon": in_circle_epsilon,
            "orientation_epsilon": orientation_epsilon,
            "super_triangle_scale": super_triangle_scale,
        }
        self._listeners: List[Listener] = []
        self._clear()

    def _clear(self) -> None:
        self._state = ConstructionState.EMPTY
        self._progress = 0
        self._stale = False
        self._triangulator: Optional[DelaunayTriangulator] = None
        self._extractor: Optional[VoronoiExtractor] = None
        self._order: List[int] = []
        self._index: Dict[int, int] = {}
        self._mesh = DelaunayMesh.empty()
        self._cells: List[VoronoiCell] = []

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: ChangeKind, seed_id: Optional[int] = None) -> None:
        event = ChangeEvent(kind=kind, state=self._state, seed_id=seed_id)
        for listener in list(self._listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConstructionState:
        return self._state

    @property
    def progress(self) -> int:
        """Seeds inserted while triangulating, cells extracted while extracting."""
        return self._progress

    @property
    def is_stale(self) -> bool:
        return self._stale

    @property
    def seed_ids(self) -> List[int]:
        return self.seeds.ids

    @property
    def positions(self) -> np.ndarray:
        return self.seeds.positions

    @property
    def mesh(self) -> DelaunayMesh:
        return self._mesh

    @property
    def triangles(self) -> np.ndarray:
        """Current triangles as index triples into ``positions``."""
        return self._mesh.triangles

    @property
    def cells(self) -> List[VoronoiCell]:
        return list(self._cells)

    def result(self) -> ConstructionResult:
        return ConstructionResult(
            seed_ids=list(self._order),
            positions=self._mesh.points.copy(),
            mesh=self._mesh,
            cells=list(self._cells),
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def reset(self) -> ConstructionState:
        """Discard any construction in progress."""
        self._clear()
        self._notify(ChangeKind.RESET)
        return self._state

    def _new_triangulator(self) -> DelaunayTriangulator:
        return DelaunayTriangulator(self.seeds.positions, self.domain, **self._triangulator_options)

    def _start(self, triangulator: DelaunayTriangulator) -> None:
        self._clear()
        self._triangulator = triangulator
        self._order = self.seeds.ids
        self._index = {seed_id: i for i, seed_id in enumerate(self._order)}
        self._state = ConstructionState.TRIANGULATING

    def _extract(self, index: int) -> VoronoiCell:
        points = self._mesh.points
        raw = self._extractor.extract(index)
        return self.clipper.clip_cell(raw, points[index], seed_id=self._order[index], points=points)

    def _extract_all(self) -> None:
        self._extractor = VoronoiExtractor(self._mesh)
        self._cells = [self._extract(i) for i in range(len(self._order))]

    def run(self) -> ConstructionResult:
        """
        Build the whole construction from scratch.

        Raises:
            InsufficientSeedsError: fewer than 3 non-collinear seeds; the
                controller is left as it was
        """
        triangulator = self._new_triangulator()
        logger.info("Construction started", seeds=triangulator.n_seeds)

        self._start(triangulator)
        self._mesh = triangulator.triangulate()
        self._progress = triangulator.n_seeds
        self._state = ConstructionState.TRIANGULATED
        self._notify(ChangeKind.MESH)

        self._extract_all()
        self._progress = len(self._cells)
        self._state = ConstructionState.COMPLETE
        self._notify(ChangeKind.CELLS)

        logger.info(
            "Construction complete",
            seeds=len(self._order),
            triangles=self._mesh.n_triangles,
            open_cells=sum(1 for c in self._cells if c.is_open),
        )
        return self.result()

    def step(self) -> ConstructionState:
        """
        Advance by one seed insertion or one cell extraction.

        Returns:
            The state after the step; COMPLETE is returned unchanged
        """
        if self._stale or self._state == ConstructionState.EMPTY:
            # Raises before anything changes
            triangulator = self._new_triangulator()
            if self._stale:
                self.reset()
            self._start(triangulator)

        if self._state == ConstructionState.TRIANGULATING:
            index = self._triangulator.insert_next()
            self._progress = self._triangulator.inserted
            if self._triangulator.is_complete:
                self._mesh = self._triangulator.finalize()
                self._state = ConstructionState.TRIANGULATED
            else:
                self._mesh = self._triangulator.mesh
            logger.debug("Step inserted seed", seed_id=self._order[index], progress=self._progress)
            self._notify(ChangeKind.MESH, self._order[index])
            return self._state

        if self._state == ConstructionState.TRIANGULATED:
            self._extractor = VoronoiExtractor(self._mesh)
            self._cells = []
            self._progress = 0
            self._state = ConstructionState.EXTRACTING

        if self._state == ConstructionState.EXTRACTING:
            cell = self._extract(self._progress)
            self._cells.append(cell)
            self._progress += 1
            if self._progress >= len(self._order):
                self._state = ConstructionState.COMPLETE
            logger.debug("Step extracted cell", seed_id=cell.seed_id, progress=self._progress)
            self._notify(ChangeKind.CELLS, cell.seed_id)

        return self._state

    # ------------------------------------------------------------------
    # Seed editing
    # ------------------------------------------------------------------

    def _mark_stale(self) -> None:
        if self._state != ConstructionState.EMPTY:
            self._stale = True

    def add_seed(self, point: Sequence[float]) -> int:
        """
        Add a seed.

        Raises:
            OutOfDomainError: point outside the domain
            TooCloseError: point closer than min_separation to another seed
        """
        seed_id = self.seeds.add(point)
        self._mark_stale()
        self._notify(ChangeKind.SEEDS, seed_id)
        return seed_id

    def remove_seed(self, seed_id: int) -> Point:
        """Remove a seed; raises InvalidSeedError for unknown ids."""
        position = self.seeds.remove(seed_id)
        self._mark_stale()
        self._notify(ChangeKind.SEEDS, seed_id)
        return position

    def randomize_seeds(
        self,
        count: int,
        seed: Optional[int] = None,
        distribution: SeedDistribution = SeedDistribution.RANDOM,
    ) -> List[int]:
        """Replace all seeds with ``count`` sampled ones; see SeedSet.randomize."""
        ids = self.seeds.randomize(count, seed=seed, distribution=distribution)
        self._mark_stale()
        self._notify(ChangeKind.SEEDS)
        return ids

    def move_seed(self, seed_id: int, point: Sequence[float]) -> Point:
        """
        Move a seed and update the construction.

        After triangulation the mesh is re-legalized around the seed (or
        rebuilt when that is not possible) and cells are re-extracted. While
        a stepwise construction is in progress the move marks it stale.

        Returns:
            The new position

        Raises:
            InvalidSeedError: unknown seed id
            OutOfDomainError: point outside the domain (``previous`` is set)
            TooCloseError: point too close to another seed (``previous`` is set)
        """
        position = self.seeds.move(seed_id, point)
        self._notify(ChangeKind.SEEDS, seed_id)

        if self._stale:
            return position
        if self._state in (ConstructionState.TRIANGULATING, ConstructionState.EXTRACTING):
            self._stale = True
            return position
        if self._state == ConstructionState.EMPTY:
            return position

        index = self._index[seed_id]
        if not self._triangulator.move_vertex(index, position):
            try:
                triangulator = self._new_triangulator()
            except InsufficientSeedsError:
                logger.warning("Seeds became degenerate after move, resetting", seed_id=seed_id)
                self.reset()
                return position
            self._triangulator = triangulator
            triangulator.triangulate()
            logger.debug("Rebuilt triangulation after move", seed_id=seed_id)

        self._mesh = self._triangulator.mesh
        self._notify(ChangeKind.MESH, seed_id)

        if self._state == ConstructionState.COMPLETE:
            self._extract_all()
            self._notify(ChangeKind.CELLS, seed_id)
        return position

    def try_move_seed(self, seed_id: int, point: Sequence[float]) -> Tuple[bool, Point]:
        """Move if allowed; returns (moved, position held after the call)."""
        try:
            return True, self.move_seed(seed_id, point)
        except (OutOfDomainError, TooCloseError) as exc:
            return False, exc.previous

    # ------------------------------------------------------------------
    # Queries and tools
    # ------------------------------------------------------------------

    def find_cell(self, point: Sequence[float]) -> int:
        """
        Seed whose cell contains the point.

        Raises:
            OutOfDomainError: point outside the domain
            InsufficientSeedsError: there are no seeds
        """
        p = (float(point[0]), float(point[1]))
        if not self.domain.contains(p):
            raise OutOfDomainError(p)
        seed_id, _ = self.seeds.nearest(p)
        if seed_id is None:
            raise InsufficientSeedsError(0, "there are no seeds")
        return seed_id

    def relax(self, iterations: int = 1) -> int:
        """
        Lloyd relaxation: move every seed to the centroid of its cell.

        Moves that would break the separation are skipped. The construction
        is rebuilt after each iteration.

        Args:
            iterations: Number of relaxation rounds

        Returns:
            Total number of seed moves applied
        """
        moved = 0
        for _ in range(iterations):
            if self._state != ConstructionState.COMPLETE or self._stale:
                self.run()

            targets = [(cell.seed_id, cell.centroid) for cell in self._cells if len(cell)]
            for seed_id, centroid in targets:
                ok, _ = self.seeds.try_move(seed_id, centroid)
                moved += ok

            self._notify(ChangeKind.SEEDS)
            self.run()

        logger.info("Relaxation finished", iterations=iterations, moved=moved)
        return moved
