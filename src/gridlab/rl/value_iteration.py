from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import numpy as np

from .gridworld import ACTIONS, CellType, GridWorld, NO_POLICY, Position, SimulationParams, StepResult
from .transitions import expected_backup, successor


def q_for_cell(grid: GridWorld, x: int, y: int, params: SimulationParams) -> np.ndarray:
    q = np.empty(len(ACTIONS), dtype=np.float64)
    for a in ACTIONS:
        q[a] = expected_backup(grid, x, y, a, params)
    return q


def value_iteration_step(grid: GridWorld, params: SimulationParams) -> StepResult:
    """
    One synchronous Bellman-optimality sweep.

    Every backup reads `grid` (the previous sweep); results go to a fresh copy,
    so cells updated earlier in the sweep are never read back. Walls and
    terminals pass through unchanged. Returns the new grid and the max-norm
    value change.
    """
    out = grid.copy()
    delta = 0.0
    for x, y in grid.active_positions():
        q = q_for_cell(grid, x, y, params)
        best = int(np.argmax(q))  # first max wins: UP, DOWN, LEFT, RIGHT
        out.values[y, x] = q[best]
        out.policy[y, x] = best
        delta = max(delta, abs(float(q[best]) - float(grid.values[y, x])))
    return StepResult(out, delta)


def value_iteration(
    grid: GridWorld,
    params: SimulationParams,
    max_iter: int = 1000,
) -> Tuple[GridWorld, Dict[str, float]]:
    """
    Sweep until the delta drops below params.threshold (or max_iter).
    Returns (grid, info) with info = {"iters": int, "residual": float}.
    """
    residual = np.inf
    iters = 0
    for it in range(max_iter):
        iters = it + 1
        grid, residual = value_iteration_step(grid, params)
        if residual < params.threshold:
            break
    return grid, {"iters": iters, "residual": float(residual)}


def simulate_policy(
    grid: GridWorld,
    max_steps: int = 100,
    start: Optional[Position] = None,
) -> Tuple[float, List[Position], Optional[CellType]]:
    """
    Follow the stored policy deterministically (no noise) from `start`
    (default: the START cell).
    Returns (return, path, terminal type reached or None).
    """
    pos = start if start is not None else grid.start
    if pos is None:
        return 0.0, [], None
    path = [pos]
    G = 0.0
    for _ in range(max_steps):
        x, y = pos
        if grid.is_terminal(x, y):
            return G + float(grid.rewards[y, x]), path, grid.cell_type(x, y)
        a = int(grid.policy[y, x])
        if a == NO_POLICY:
            break
        G += float(grid.rewards[y, x])
        pos = successor(grid, x, y, ACTIONS[a])
        path.append(pos)
    x, y = pos
    if grid.is_terminal(x, y):
        return G + float(grid.rewards[y, x]), path, grid.cell_type(x, y)
    return G, path, None
