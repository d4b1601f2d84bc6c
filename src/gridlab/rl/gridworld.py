from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import IntEnum
from typing import Any, Dict, Iterator, NamedTuple, Optional, Tuple

import numpy as np

Position = Tuple[int, int]  # (x, y); x = column, y = row (0 = top)


class Action(IntEnum):
    # Enumeration order doubles as the tie-break order for argmax.
    UP = 0
    DOWN = 1
    LEFT = 2
    RIGHT = 3


ACTIONS: Tuple[Action, ...] = tuple(Action)
NO_POLICY = -1


class CellType(IntEnum):
    # Enumeration order is the topology-edit cycle.
    EMPTY = 0
    WALL = 1
    GOAL = 2
    TRAP = 3
    START = 4

    def next(self) -> "CellType":
        return CellType((self.value + 1) % len(CellType))


TERMINAL_TYPES = (CellType.GOAL, CellType.TRAP)


# -------------------------------
# Parameters
# -------------------------------

# (low, high) domain of every tunable; values outside are clamped.
PARAM_BOUNDS: Dict[str, Tuple[float, float]] = {
    "gamma": (0.0, 1.0),
    "noise": (0.0, 0.5),
    "living_reward": (-5.0, 5.0),
    "goal_reward": (0.0, 50.0),
    "trap_reward": (-50.0, 0.0),
    "threshold": (1e-12, 1.0),
    "alpha": (0.0, 1.0),
    "epsilon": (0.0, 1.0),
    "epsilon_min": (0.0, 1.0),
    "epsilon_decay": (0.0, 1.0),
}

REWARD_PARAMS = ("living_reward", "goal_reward", "trap_reward")


@dataclass(frozen=True)
class SimulationParams:
    gamma: float = 0.9  # discount factor
    noise: float = 0.1  # mass given to EACH of the two orthogonal actions
    living_reward: float = -0.1
    goal_reward: float = 10.0
    trap_reward: float = -10.0
    threshold: float = 0.001  # value-iteration convergence threshold
    # Q-learning
    alpha: float = 0.1  # learning rate
    epsilon: float = 0.2  # exploration rate
    epsilon_min: float = 0.0
    epsilon_decay: float = 1.0  # multiplicative, per step; 1.0 disables decay

    def __post_init__(self) -> None:
        for name, (lo, hi) in PARAM_BOUNDS.items():
            v = float(getattr(self, name))
            object.__setattr__(self, name, min(max(v, lo), hi))

    def replace(self, **changes: float) -> "SimulationParams":
        """
        Return a copy with `changes` applied and clamped into PARAM_BOUNDS.
        Unknown names raise ValueError.
        """
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ValueError(f"unknown simulation parameter(s): {sorted(unknown)}")
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "SimulationParams":
        return cls().replace(**{k: float(v) for k, v in (d or {}).items() if v is not None})

    def reward_for(self, cell_type: CellType) -> float:
        if cell_type == CellType.GOAL:
            return self.goal_reward
        if cell_type == CellType.TRAP:
            return self.trap_reward
        if cell_type == CellType.WALL:
            return 0.0
        return self.living_reward


# -------------------------------
# Layout
# -------------------------------


@dataclass(frozen=True)
class GridConfig:
    width: int = 7
    height: int = 5
    goal: Position = (6, 0)
    trap: Position = (6, 1)
    start: Position = (0, 4)
    walls: Tuple[Position, ...] = ((2, 1), (2, 2))

    @property
    def protected(self) -> Tuple[Position, Position]:
        """Canonical terminal pair that topology edits may not touch."""
        return (self.goal, self.trap)

    def is_protected(self, x: int, y: int) -> bool:
        return (x, y) in self.protected


@dataclass(frozen=True)
class Cell:
    """Read-only view of one grid position."""

    x: int
    y: int
    type: CellType
    reward: float
    value: float
    policy: Optional[Action]
    q_values: Dict[Action, float] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_TYPES

    @property
    def is_wall(self) -> bool:
        return self.type == CellType.WALL


class StepResult(NamedTuple):
    grid: "GridWorld"
    delta: float


# -------------------------------
# Grid
# -------------------------------


@dataclass(eq=False)
class GridWorld:
    """
    Fixed-size rectangular grid stored as parallel numpy arrays indexed [y, x].

    - types:   CellType codes
    - rewards: reward attached to leaving the cell (terminals: their fixed payoff)
    - values:  current value estimate
    - policy:  Action code, or NO_POLICY
    - q:       [H, W, 4] action values (Q-learning only)

    Solver steps never write into their input; they `copy()` and write the copy,
    so one step reads a single consistent snapshot.
    """

    types: np.ndarray
    rewards: np.ndarray
    values: np.ndarray
    policy: np.ndarray
    q: np.ndarray

    def __post_init__(self) -> None:
        shape = self.types.shape
        if len(shape) != 2:
            raise ValueError("types must be a 2-D array")
        for name in ("rewards", "values", "policy"):
            if getattr(self, name).shape != shape:
                raise ValueError(f"{name} must have shape {shape}")
        if self.q.shape != shape + (len(ACTIONS),):
            raise ValueError(f"q must have shape {shape + (len(ACTIONS),)}")

    # ---------- construction ----------

    @classmethod
    def build(
        cls, params: Optional[SimulationParams] = None, config: Optional[GridConfig] = None
    ) -> "GridWorld":
        params = params or SimulationParams()
        config = config or GridConfig()
        shape = (config.height, config.width)

        types = np.full(shape, CellType.EMPTY, dtype=np.int8)
        placements = [(config.goal, CellType.GOAL), (config.trap, CellType.TRAP)]
        placements += [(config.start, CellType.START)]
        placements += [(w, CellType.WALL) for w in config.walls]
        for (x, y), t in placements:
            if not (0 <= x < config.width and 0 <= y < config.height):
                raise ValueError(f"{t.name} position {(x, y)} is outside the grid")
            types[y, x] = t

        rewards = np.empty(shape, dtype=np.float64)
        for t in CellType:
            rewards[types == t] = params.reward_for(t)

        grid = cls(
            types=types,
            rewards=rewards,
            values=np.zeros(shape, dtype=np.float64),
            policy=np.full(shape, NO_POLICY, dtype=np.int8),
            q=np.zeros(shape + (len(ACTIONS),), dtype=np.float64),
        )
        return grid.reset_simulation()

    def copy(self) -> "GridWorld":
        return GridWorld(
            types=self.types.copy(),
            rewards=self.rewards.copy(),
            values=self.values.copy(),
            policy=self.policy.copy(),
            q=self.q.copy(),
        )

    # ---------- basic properties ----------

    @property
    def width(self) -> int:
        return int(self.types.shape[1])

    @property
    def height(self) -> int:
        return int(self.types.shape[0])

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def cell_type(self, x: int, y: int) -> CellType:
        return CellType(int(self.types[y, x]))

    def is_wall(self, x: int, y: int) -> bool:
        return self.types[y, x] == CellType.WALL

    def is_terminal(self, x: int, y: int) -> bool:
        return self.cell_type(x, y) in TERMINAL_TYPES

    def is_active(self, x: int, y: int) -> bool:
        """Cells whose value/policy evolve under a solver (EMPTY and START)."""
        return not (self.is_wall(x, y) or self.is_terminal(x, y))

    def terminal_mask(self) -> np.ndarray:
        return np.isin(self.types, [int(t) for t in TERMINAL_TYPES])

    def active_positions(self) -> Iterator[Position]:
        for y in range(self.height):
            for x in range(self.width):
                if self.is_active(x, y):
                    yield x, y

    @property
    def start(self) -> Optional[Position]:
        ys, xs = np.nonzero(self.types == CellType.START)
        if len(xs) == 0:
            return None
        return int(xs[0]), int(ys[0])

    # ---------- views ----------

    def cell(self, x: int, y: int) -> Cell:
        if not self.in_bounds(x, y):
            raise ValueError(f"cell {(x, y)} is outside a {self.width}x{self.height} grid")
        p = int(self.policy[y, x])
        return Cell(
            x=x,
            y=y,
            type=self.cell_type(x, y),
            reward=float(self.rewards[y, x]),
            value=float(self.values[y, x]),
            policy=None if p == NO_POLICY else Action(p),
            q_values={a: float(self.q[y, x, a]) for a in ACTIONS},
        )

    def cells(self) -> Iterator[Cell]:
        for y in range(self.height):
            for x in range(self.width):
                yield self.cell(x, y)

    # ---------- simulation-field resets ----------

    def reset_simulation(self) -> "GridWorld":
        """
        Fresh value/policy/Q fields on the same layout. Terminals are seeded to
        their reward, everything else to 0.
        """
        out = self.copy()
        out.values = np.where(self.terminal_mask(), self.rewards, 0.0)
        out.policy.fill(NO_POLICY)
        out.q.fill(0.0)
        return out

    def _reseed_cell(self, x: int, y: int) -> None:
        # in-place; only called on a fresh copy
        self.values[y, x] = self.rewards[y, x] if self.is_terminal(x, y) else 0.0
        self.policy[y, x] = NO_POLICY
        self.q[y, x, :] = 0.0

    # ---------- topology & rewards ----------

    def cycle_cell(self, x: int, y: int, params: SimulationParams) -> "GridWorld":
        """
        Advance one cell through EMPTY -> WALL -> GOAL -> TRAP -> START -> EMPTY,
        recompute its reward and reseed its simulation fields. A new START
        demotes any previous START to EMPTY.
        """
        if not self.in_bounds(x, y):
            raise ValueError(f"cell {(x, y)} is outside a {self.width}x{self.height} grid")
        out = self.copy()
        new_type = self.cell_type(x, y).next()
        if new_type == CellType.START:
            for sy, sx in zip(*np.nonzero(out.types == CellType.START)):
                out.types[sy, sx] = CellType.EMPTY
                out.rewards[sy, sx] = params.reward_for(CellType.EMPTY)
        out.types[y, x] = new_type
        out.rewards[y, x] = params.reward_for(new_type)
        out._reseed_cell(x, y)
        return out

    def with_rewards(self, params: SimulationParams) -> "GridWorld":
        """Re-apply reward parameters by cell type; terminal values follow their reward."""
        out = self.copy()
        for t in CellType:
            out.rewards[self.types == t] = params.reward_for(t)
        mask = self.terminal_mask()
        out.values[mask] = out.rewards[mask]
        return out

    # ---------- comparison ----------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GridWorld):
            return NotImplemented
        return all(
            np.array_equal(getattr(self, name), getattr(other, name))
            for name in ("types", "rewards", "values", "policy", "q")
        )

    __hash__ = None  # type: ignore[assignment]
