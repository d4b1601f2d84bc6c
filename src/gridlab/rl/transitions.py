from __future__ import annotations

from typing import Dict, List, NamedTuple, Tuple

from .gridworld import Action, GridWorld, Position, SimulationParams

# (dx, dy); y grows downward
ACTION_VECTORS: Dict[Action, Tuple[int, int]] = {
    Action.UP: (0, -1),
    Action.DOWN: (0, 1),
    Action.LEFT: (-1, 0),
    Action.RIGHT: (1, 0),
}

ORTHOGONAL: Dict[Action, Tuple[Action, Action]] = {
    Action.UP: (Action.LEFT, Action.RIGHT),
    Action.DOWN: (Action.LEFT, Action.RIGHT),
    Action.LEFT: (Action.UP, Action.DOWN),
    Action.RIGHT: (Action.UP, Action.DOWN),
}


class Outcome(NamedTuple):
    action: Action  # direction actually taken
    probability: float
    x: int
    y: int


class BreakdownRow(NamedTuple):
    action: Action
    probability: float
    successor_value: float
    contribution: float  # probability * (reward + gamma * successor_value)


class Breakdown(NamedTuple):
    x: int
    y: int
    action: Action
    reward: float
    rows: List[BreakdownRow]
    total: float


def successor(grid: GridWorld, x: int, y: int, action: Action) -> Position:
    """
    Deterministic move. Leaving the grid or hitting a wall bounces back to (x, y).
    """
    dx, dy = ACTION_VECTORS[action]
    nx, ny = x + dx, y + dy
    if not grid.in_bounds(nx, ny) or grid.is_wall(nx, ny):
        return x, y
    return nx, ny


def transition_outcomes(grid: GridWorld, x: int, y: int, action: Action, noise: float) -> List[Outcome]:
    """
    Noisy actuation: the intended action with 1 - 2*noise, each orthogonal
    action with noise. Always three outcomes; bounced outcomes land on (x, y).
    """
    side_a, side_b = ORTHOGONAL[action]
    dist = [(action, 1.0 - 2.0 * noise), (side_a, noise), (side_b, noise)]
    out = []
    for a, p in dist:
        nx, ny = successor(grid, x, y, a)
        out.append(Outcome(a, p, nx, ny))
    return out


def expected_backup(grid: GridWorld, x: int, y: int, action: Action, params: SimulationParams) -> float:
    """
    sum_i p_i * (R(origin) + gamma * V(successor_i)); reward belongs to the cell being left.
    """
    r = float(grid.rewards[y, x])
    total = 0.0
    for o in transition_outcomes(grid, x, y, action, params.noise):
        total += o.probability * (r + params.gamma * float(grid.values[o.y, o.x]))
    return total


def bellman_breakdown(
    grid: GridWorld, x: int, y: int, action: Action, params: SimulationParams
) -> Breakdown:
    """Per-outcome terms of `expected_backup`, for inspection and explanations."""
    r = float(grid.rewards[y, x])
    rows = []
    for o in transition_outcomes(grid, x, y, action, params.noise):
        v = float(grid.values[o.y, o.x])
        rows.append(BreakdownRow(o.action, o.probability, v, o.probability * (r + params.gamma * v)))
    return Breakdown(x, y, action, r, rows, sum(row.contribution for row in rows))
