from __future__ import annotations

from dataclasses import dataclass, replace
from typing import NamedTuple, Optional

import numpy as np

from .gridworld import ACTIONS, Action, GridWorld, Position, SimulationParams
from .transitions import successor


@dataclass(frozen=True)
class AgentState:
    position: Optional[Position]  # None when the grid has no START
    epsilon: float  # current exploration rate (decays per step)
    episodes: int = 0  # completed episodes (GOAL/TRAP reached)

    @classmethod
    def at_start(cls, grid: GridWorld, params: SimulationParams) -> "AgentState":
        return cls(position=grid.start, epsilon=params.epsilon)


class QStepResult(NamedTuple):
    grid: GridWorld
    agent: AgentState
    delta: float  # |Q change| of the updated entry


def greedy_action(q_row: np.ndarray) -> Action:
    return ACTIONS[int(np.argmax(q_row))]


def select_action(q_row: np.ndarray, epsilon: float, rng: np.random.Generator) -> Action:
    """epsilon-greedy over the four actions; ties go to the first in enumeration order."""
    if rng.random() < epsilon:
        return ACTIONS[int(rng.integers(0, len(ACTIONS)))]
    return greedy_action(q_row)


def q_learning_step(
    grid: GridWorld,
    agent: AgentState,
    params: SimulationParams,
    rng: np.random.Generator,
) -> QStepResult:
    """
    One environment transition and TD update:
      Q(s,a) <- Q(s,a) + alpha * (r + gamma * max_a' Q(s',a') - Q(s,a))
    where r is the reward of the cell the agent lands in (its own cell when
    blocked). The moved-from cell's value/policy mirror max/argmax Q.
    Entering GOAL or TRAP sends the agent back to START for the next step.
    """
    if agent.position is None:
        return QStepResult(grid, agent, 0.0)

    x, y = agent.position
    if not grid.is_active(x, y):
        # the cell under the agent was edited into a wall or terminal
        return QStepResult(grid, replace(agent, position=grid.start), 0.0)

    a = select_action(grid.q[y, x], agent.epsilon, rng)
    nx, ny = successor(grid, x, y, a)
    r = float(grid.rewards[ny, nx])

    out = grid.copy()
    old = float(grid.q[y, x, a])
    td_target = r + params.gamma * float(np.max(grid.q[ny, nx]))
    new = old + params.alpha * (td_target - old)
    out.q[y, x, a] = new
    out.values[y, x] = float(np.max(out.q[y, x]))
    out.policy[y, x] = int(greedy_action(out.q[y, x]))

    epsilon = max(params.epsilon_min, agent.epsilon * params.epsilon_decay)
    if grid.is_terminal(nx, ny):
        agent = AgentState(position=grid.start, epsilon=epsilon, episodes=agent.episodes + 1)
    else:
        agent = replace(agent, position=(nx, ny), epsilon=epsilon)
    return QStepResult(out, agent, abs(new - old))
