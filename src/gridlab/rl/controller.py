from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from gridlab.core.seeding import make_rng

from .convergence import ConvergenceTracker, HistoryPoint
from .gridworld import REWARD_PARAMS, GridConfig, GridWorld, SimulationParams
from .policy_iteration import policy_iteration_step
from .q_learning import AgentState, q_learning_step
from .value_iteration import value_iteration_step

log = logging.getLogger("gridlab.rl")

# changing any of these moves the value-iteration fixed point
BACKUP_PARAMS = ("gamma", "noise") + REWARD_PARAMS


class Algorithm(str, Enum):
    VALUE_ITERATION = "value_iteration"
    POLICY_ITERATION = "policy_iteration"
    Q_LEARNING = "q_learning"


# seconds between ticks while running; one Q-learning step is a single move,
# a DP step is a full sweep
TICK_INTERVALS: Dict[Algorithm, float] = {
    Algorithm.VALUE_ITERATION: 0.15,
    Algorithm.POLICY_ITERATION: 0.15,
    Algorithm.Q_LEARNING: 0.05,
}

ALGORITHM_INFO: Dict[Algorithm, Dict[str, str]] = {
    Algorithm.VALUE_ITERATION: {
        "title": "Value Iteration",
        "formula": "V_{k+1}(s) = max_a sum_s' P(s'|s,a) [R + gamma V_k(s')]",
        "summary": "Computes optimal values directly by applying the Bellman optimality "
        "backup to every state on each sweep.",
    },
    Algorithm.POLICY_ITERATION: {
        "title": "Policy Iteration",
        "formula": "pi_{i+1}(s) = argmax_a sum_s' P(s'|s,a) [R + gamma V^{pi_i}(s')]",
        "summary": "Alternates between evaluating the current policy and improving it.",
    },
    Algorithm.Q_LEARNING: {
        "title": "Q-Learning",
        "formula": "Q(s,a) <- Q(s,a) + alpha [R + gamma max_a' Q(s',a') - Q(s,a)]",
        "summary": "Model-free: learns action values from experience with epsilon-greedy exploration.",
    },
}


@dataclass(frozen=True)
class Snapshot:
    """Immutable view handed to listeners and the presentation layer."""

    grid: GridWorld
    agent: AgentState
    algorithm: Algorithm
    step: int
    running: bool
    converged: bool
    history: Tuple[HistoryPoint, ...]
    params: SimulationParams


Listener = Callable[[Snapshot], None]


class SimulationController:
    """
    Owns the simulation state (grid, agent, params, counters) and dispatches one
    solver step per tick. Every step replaces the grid with a new buffer.
    """

    def __init__(
        self,
        params: Optional[SimulationParams] = None,
        config: Optional[GridConfig] = None,
        algorithm: Algorithm | str = Algorithm.VALUE_ITERATION,
        seed: Optional[int] = None,
    ):
        self.params = params or SimulationParams()
        self.config = config or GridConfig()
        self.algorithm = Algorithm(algorithm)
        self.rng: np.random.Generator = make_rng(seed)
        self.tracker = ConvergenceTracker()
        self._listeners: List[Listener] = []
        self._dispatch: Dict[Algorithm, Callable[[], float]] = {
            Algorithm.VALUE_ITERATION: self._step_value_iteration,
            Algorithm.POLICY_ITERATION: self._step_policy_iteration,
            Algorithm.Q_LEARNING: self._step_q_learning,
        }
        self.reset()

    # ---------- state ----------

    @property
    def converged(self) -> bool:
        return self.tracker.converged

    @property
    def history(self) -> List[HistoryPoint]:
        return self.tracker.history

    @property
    def interval(self) -> float:
        return TICK_INTERVALS[self.algorithm]

    def snapshot(self) -> Snapshot:
        return Snapshot(
            grid=self.grid,
            agent=self.agent,
            algorithm=self.algorithm,
            step=self.step_count,
            running=self.running,
            converged=self.converged,
            history=tuple(self.tracker.history),
            params=self.params,
        )

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        snap = self.snapshot()
        for fn in self._listeners:
            fn(snap)

    # ---------- controls ----------

    def reset(self) -> None:
        """Rebuild grid and agent from the layout defaults."""
        self.grid = GridWorld.build(self.params, self.config)
        self.agent = AgentState.at_start(self.grid, self.params)
        self.step_count = 0
        self.running = False
        self.tracker.reset()
        log.info("Reset %dx%d grid (algorithm=%s)", self.grid.width, self.grid.height, self.algorithm.value)

    def select_algorithm(self, algorithm: Algorithm | str) -> None:
        """Switch solver: clear simulation fields and counters, keep the layout."""
        self.algorithm = Algorithm(algorithm)
        self.grid = self.grid.reset_simulation()
        self.agent = AgentState.at_start(self.grid, self.params)
        self.step_count = 0
        self.running = False
        self.tracker.reset()
        log.info("Switched to %s", self.algorithm.value)

    def start(self) -> None:
        self.running = True
        self.tracker.converged = False

    def stop(self) -> None:
        self.running = False

    def tick(self) -> bool:
        """Scheduler entry point: one step if running. Returns whether a step ran."""
        if not self.running:
            return False
        self.step()
        return True

    def step(self) -> float:
        """One step of the active algorithm, regardless of the run flag."""
        delta = self._dispatch[self.algorithm]()
        log.debug("%s step %d: delta=%.6g", self.algorithm.value, self.step_count, delta)
        self._notify()
        return delta

    def _step_value_iteration(self) -> float:
        self.grid, delta = value_iteration_step(self.grid, self.params)
        self.step_count += 1
        was_converged = self.converged
        if self.tracker.record(self.step_count, delta, self.params.threshold):
            self.running = False
            if not was_converged:
                log.info("Value iteration converged at step %d (delta=%.3g)", self.step_count, delta)
        return delta

    def _step_policy_iteration(self) -> float:
        self.grid, delta = policy_iteration_step(self.grid, self.params, self.step_count)
        self.step_count += 1
        self.tracker.record(self.step_count, delta)
        return delta

    def _step_q_learning(self) -> float:
        self.grid, agent, delta = q_learning_step(self.grid, self.agent, self.params, self.rng)
        if agent.episodes != self.agent.episodes:
            log.debug("Episode %d finished at step %d", agent.episodes, self.step_count + 1)
        self.agent = agent
        self.step_count += 1
        self.tracker.record(self.step_count, delta)
        return delta

    # ---------- edits ----------

    def edit_cell(self, x: int, y: int) -> bool:
        """
        Cycle one cell's type. Protected terminal coordinates are left alone.
        Returns whether the grid changed.
        """
        if self.config.is_protected(x, y):
            log.info("Edit rejected for protected cell %s", (x, y))
            return False
        self.grid = self.grid.cycle_cell(x, y, self.params)
        self.step_count = 0
        self.tracker.converged = False
        pos = self.agent.position
        if pos is None or not self.grid.is_active(*pos):
            self.agent = AgentState(self.grid.start, self.agent.epsilon, self.agent.episodes)
        log.info("Cell %s is now %s", (x, y), self.grid.cell_type(x, y).name)
        return True

    def update_params(self, **changes: float) -> SimulationParams:
        """
        Write hyperparameters (clamped to their domains). Reward changes are
        applied to every cell of the matching type. Gamma, noise and reward
        changes clear the converged flag.
        """
        self.params = self.params.replace(**changes)
        if any(k in REWARD_PARAMS for k in changes):
            self.grid = self.grid.with_rewards(self.params)
        if any(k in BACKUP_PARAMS for k in changes):
            self.tracker.converged = False
        if "epsilon" in changes:
            self.agent = AgentState(self.agent.position, self.params.epsilon, self.agent.episodes)
        log.debug("Params updated: %s", changes)
        return self.params
