#!/usr/bin/env python3
"""
Demo script walking through a stepwise Voronoi construction.
"""

import numpy as np
from py_voronoi.core import ConstructionController, ConstructionState, SeedDistribution, TooCloseError
from py_voronoi.core.validation import coverage_gap, overlapping_pairs
from py_voronoi.log_config import configure_logging


def main():
    """Demonstrate stepwise construction, editing and relaxation."""
    configure_logging(level="WARNING", fmt="console")

    print("Py-Voronoi Construction Demo")
    print("=" * 40)

    controller = ConstructionController(min_separation=0.05)
    events = []
    controller.subscribe(events.append)

    print("\nRandomizing 20 seeds...")
    controller.randomize_seeds(20, seed=2024)
    print(f"Seed ids: {controller.seed_ids}")

    # Animate the construction one step at a time
    print("\nStepping:")
    print("-" * 30)
    steps = 0
    state = controller.state
    while state != ConstructionState.COMPLETE:
        state = controller.step()
        steps += 1
        if steps % 5 == 0 or state == ConstructionState.COMPLETE:
            print(f"  step {steps:3d}: {state.value:<14} progress={controller.progress}")

    cells = controller.cells
    areas = np.array([cell.area for cell in cells])
    print(f"\nTriangles: {len(controller.triangles)}")
    print(f"Cells: {len(cells)} ({sum(c.is_open for c in cells)} touched the hull)")
    print(f"Cell area range: {areas.min():.4f}-{areas.max():.4f} (total {areas.sum():.6f})")
    print(f"Coverage gap: {coverage_gap(cells, controller.domain):.2e}")
    print(f"Overlapping pairs: {len(overlapping_pairs(cells))}")

    # Editing
    print("\nEditing:")
    print("-" * 30)
    seed_id = controller.seed_ids[0]
    x, y = controller.seeds.get(seed_id)
    target = (min(x + 0.02, 1.0), y)
    moved, position = controller.try_move_seed(seed_id, target)
    print(f"  move seed {seed_id} -> {target}: {'ok' if moved else 'rejected'}, now at {position}")

    other = controller.seeds.get(controller.seed_ids[1])
    try:
        controller.add_seed((other[0] + 0.001, other[1]))
    except TooCloseError as exc:
        print(f"  add rejected: {exc}")

    print(f"  query (0.5, 0.5) -> seed {controller.find_cell((0.5, 0.5))}")

    # Lloyd relaxation
    print("\nRelaxation:")
    print("-" * 30)
    for round_ in range(1, 4):
        moved = controller.relax(iterations=1)
        areas = np.array([cell.area for cell in controller.cells])
        print(f"  round {round_}: {moved} moves, area std {areas.std():.4f}")

    # Other layouts
    print("\nDistributions:")
    print("-" * 30)
    for distribution in SeedDistribution:
        controller.randomize_seeds(16, seed=7, distribution=distribution)
        result = controller.run()
        print(f"  {distribution.value:<8} triangles={len(result.triangles):3d} cells={len(result.cells)}")

    print(f"\nEvents received: {len(events)}")


if __name__ == "__main__":
    main()
