from __future__ import annotations

from typing import List, Optional

from .gridworld import NO_POLICY, Action, CellType, GridWorld, Position
from .transitions import Breakdown

ARROWS = {Action.UP: "↑", Action.DOWN: "↓", Action.LEFT: "←", Action.RIGHT: "→"}
SYMBOLS = {CellType.WALL: "■", CellType.GOAL: "G", CellType.TRAP: "T"}


def render_policy(grid: GridWorld, agent: Optional[Position] = None) -> str:
    lines: List[str] = []
    for y in range(grid.height):
        row = []
        for x in range(grid.width):
            t = grid.cell_type(x, y)
            if agent == (x, y):
                row.append("A")
            elif t in SYMBOLS:
                row.append(SYMBOLS[t])
            elif grid.policy[y, x] == NO_POLICY:
                row.append("S" if t == CellType.START else "·")
            else:
                row.append(ARROWS[Action(int(grid.policy[y, x]))])
        lines.append(" ".join(row))
    return "\n".join(lines)


def render_values(grid: GridWorld, width: int = 7, precision: int = 2) -> str:
    lines = []
    for y in range(grid.height):
        row = []
        for x in range(grid.width):
            if grid.is_wall(x, y):
                row.append("■".center(width))
            else:
                row.append(f"{grid.values[y, x]:{width}.{precision}f}")
        lines.append(" ".join(row))
    return "\n".join(lines)


def render_breakdown(bd: Breakdown, gamma: float) -> str:
    lines = [f"State ({bd.x}, {bd.y}) - action {bd.action.name}"]
    for row in bd.rows:
        lines.append(
            f"  {row.action.name:<5} p={row.probability:.2f}  "
            f"({bd.reward:.1f} + {gamma} x {row.successor_value:.2f}) = {row.contribution:+.3f}"
        )
    lines.append(f"  expected V = {bd.total:.4f}")
    return "\n".join(lines)
