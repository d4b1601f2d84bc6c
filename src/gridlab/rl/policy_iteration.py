from __future__ import annotations

import numpy as np

from .gridworld import ACTIONS, GridWorld, NO_POLICY, SimulationParams, StepResult
from .transitions import successor

IMPROVEMENT_EVERY = 5  # step % 5 == 0 -> improvement sweep


def lookahead(grid: GridWorld, x: int, y: int, params: SimulationParams) -> np.ndarray:
    """
    Deterministic one-step lookahead R(origin) + gamma * V(successor(a)) for every action.
    """
    r = float(grid.rewards[y, x])
    q = np.empty(len(ACTIONS), dtype=np.float64)
    for a in ACTIONS:
        nx, ny = successor(grid, x, y, a)
        q[a] = r + params.gamma * float(grid.values[ny, nx])
    return q


def _sweep(grid: GridWorld, params: SimulationParams, improve: bool) -> StepResult:
    out = grid.copy()
    delta = 0.0
    for x, y in grid.active_positions():
        a = int(grid.policy[y, x])
        if improve or a == NO_POLICY:
            # policy only; value untouched
            out.policy[y, x] = int(np.argmax(lookahead(grid, x, y, params)))
            continue
        nx, ny = successor(grid, x, y, ACTIONS[a])
        v = float(grid.rewards[y, x]) + params.gamma * float(grid.values[ny, nx])
        out.values[y, x] = v
        delta = max(delta, abs(v - float(grid.values[y, x])))
    return StepResult(out, delta)


def policy_improvement(grid: GridWorld, params: SimulationParams) -> GridWorld:
    return _sweep(grid, params, improve=True).grid


def policy_evaluation(grid: GridWorld, params: SimulationParams) -> StepResult:
    """
    One Bellman-expectation sweep under each cell's current policy. Cells that
    have no policy yet get an improvement instead.
    """
    return _sweep(grid, params, improve=False)


def policy_iteration_step(grid: GridWorld, params: SimulationParams, step: int) -> StepResult:
    """
    Fixed cadence: improvement when `step` is a multiple of IMPROVEMENT_EVERY,
    evaluation otherwise. The delta only reflects evaluated cells.
    """
    return _sweep(grid, params, improve=step % IMPROVEMENT_EVERY == 0)
