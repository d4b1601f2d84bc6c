import numpy as np
import pytest

from gridlab.rl.controller import TICK_INTERVALS, Algorithm, SimulationController
from gridlab.rl.convergence import HISTORY_SIZE
from gridlab.rl.gridworld import CellType, GridWorld, NO_POLICY, SimulationParams
from gridlab.rl.scheduler import Scheduler


def test_initial_state():
    ctl = SimulationController(seed=0)
    assert ctl.algorithm == Algorithm.VALUE_ITERATION
    assert ctl.step_count == 0 and not ctl.running and not ctl.converged
    assert ctl.history == []
    assert ctl.agent.position == (0, 4)
    assert ctl.grid == GridWorld.build()


def test_tick_only_steps_while_running():
    ctl = SimulationController()
    grid = ctl.grid
    assert ctl.tick() is False
    assert ctl.grid is grid and ctl.step_count == 0
    ctl.start()
    assert ctl.tick() is True
    assert ctl.step_count == 1 and ctl.grid is not grid


def test_value_iteration_halts_on_convergence_but_can_still_step():
    ctl = SimulationController()
    ctl.start()
    for _ in range(1000):
        if not ctl.tick():
            break
    assert ctl.converged and not ctl.running
    assert ctl.history[-1].delta < ctl.params.threshold
    n = ctl.step_count
    ctl.step()
    assert ctl.step_count == n + 1


def test_scheduler_runs_until_convergence():
    ctl = SimulationController()
    sleeps = []
    ticks = Scheduler(ctl, sleep=sleeps.append).run(max_ticks=1000)
    assert ctl.converged and not ctl.running
    assert ticks == ctl.step_count
    assert all(0 < s <= TICK_INTERVALS[Algorithm.VALUE_ITERATION] for s in sleeps)


def test_scheduler_respects_max_ticks_and_cadence():
    ctl = SimulationController(algorithm="q_learning", seed=0)
    assert ctl.interval < SimulationController(algorithm="value_iteration").interval
    ticks = Scheduler(ctl, sleep=lambda s: None).run(max_ticks=25)
    assert ticks == 25 and ctl.step_count == 25 and not ctl.running
    assert not ctl.converged  # Q-learning never raises the flag


def test_manual_steps_match_ticks():
    a = SimulationController(algorithm=Algorithm.Q_LEARNING, seed=3)
    b = SimulationController(algorithm=Algorithm.Q_LEARNING, seed=3)
    for _ in range(200):
        a.step()
    Scheduler(b, sleep=lambda s: None).run(max_ticks=200)
    assert a.grid == b.grid and a.agent == b.agent


def test_history_is_capped_fifo():
    ctl = SimulationController(algorithm=Algorithm.Q_LEARNING, seed=0)
    for _ in range(120):
        ctl.step()
    hist = ctl.history
    assert len(hist) == HISTORY_SIZE
    assert [p.step for p in hist] == list(range(71, 121))


def test_policy_iteration_deltas_do_not_converge_flag():
    ctl = SimulationController(algorithm=Algorithm.POLICY_ITERATION)
    ctl.update_params(threshold=1.0)
    for _ in range(20):
        ctl.step()
    assert not ctl.converged
    assert ctl.history[0].delta == 0.0  # step 0 is an improvement sweep


def test_switching_algorithm_resets_fields_but_keeps_layout():
    ctl = SimulationController(seed=0)
    assert ctl.edit_cell(3, 3)  # EMPTY -> WALL
    for _ in range(10):
        ctl.step()
    types = ctl.grid.types.copy()
    ctl.select_algorithm(Algorithm.POLICY_ITERATION)
    g = ctl.grid
    assert np.array_equal(g.types, types)
    assert np.all(g.policy == NO_POLICY)
    assert np.all(g.values[~g.terminal_mask()] == 0.0)
    assert g.cell(6, 0).value == 10 and g.cell(6, 1).value == -10
    assert ctl.step_count == 0 and ctl.history == [] and not ctl.converged
    assert ctl.agent.position == (0, 4)


def test_switching_algorithm_stops_run_and_uses_edited_start():
    ctl = SimulationController(algorithm=Algorithm.Q_LEARNING, seed=0)
    for _ in range(4):
        ctl.edit_cell(3, 3)  # EMPTY -> WALL -> GOAL -> TRAP -> START
    assert ctl.grid.start == (3, 3)
    assert ctl.grid.cell(0, 4).type == CellType.EMPTY
    ctl.start()
    for _ in range(10):
        ctl.tick()
    assert ctl.running
    ctl.select_algorithm(Algorithm.VALUE_ITERATION)
    assert not ctl.running
    assert ctl.agent.position == (3, 3)
    assert ctl.grid.cell(3, 3).type == CellType.START


def test_reset_is_idempotent():
    ctl = SimulationController(seed=0)
    for _ in range(5):
        ctl.step()
    ctl.reset()
    once = ctl.grid
    ctl.reset()
    assert ctl.grid == once
    assert ctl.step_count == 0 and ctl.history == []


def test_edit_rejects_protected_cells():
    ctl = SimulationController()
    grid = ctl.grid
    assert ctl.edit_cell(6, 0) is False
    assert ctl.edit_cell(6, 1) is False
    assert ctl.grid is grid


def test_edit_cycles_once_and_clears_counters():
    ctl = SimulationController()
    ctl.start()
    while ctl.tick():
        pass
    assert ctl.converged
    assert ctl.edit_cell(4, 3)
    c = ctl.grid.cell(4, 3)
    assert c.type == CellType.WALL and c.reward == 0 and c.value == 0 and c.policy is None
    assert ctl.step_count == 0 and not ctl.converged
    ctl.edit_cell(4, 3)
    assert ctl.grid.cell(4, 3).type == CellType.GOAL
    assert ctl.grid.cell(4, 3).value == ctl.params.goal_reward


def test_edit_moves_start_and_agent():
    ctl = SimulationController(algorithm=Algorithm.Q_LEARNING, seed=0)
    for _ in range(4):
        ctl.edit_cell(0, 4)  # START -> EMPTY -> WALL -> GOAL -> TRAP
    assert ctl.grid.start is None
    assert ctl.agent.position is None
    grid = ctl.grid
    assert ctl.step() == 0.0 and ctl.grid is grid
    ctl.edit_cell(0, 4)  # TRAP -> START
    assert ctl.agent.position == (0, 4)


def test_update_params_clamps_and_reapplies_rewards():
    ctl = SimulationController()
    p = ctl.update_params(gamma=1.5, noise=0.8, goal_reward=20, living_reward=-0.2)
    assert p.gamma == 1.0 and p.noise == 0.5
    assert ctl.grid.cell(6, 0).reward == 20 and ctl.grid.cell(6, 0).value == 20
    assert ctl.grid.cell(3, 3).reward == -0.2
    assert ctl.grid.cell(2, 1).reward == 0
    with pytest.raises(ValueError):
        ctl.update_params(speed=3)
    ctl.update_params(epsilon=0.6)
    assert ctl.agent.epsilon == 0.6


@pytest.mark.parametrize("change", [{"gamma": 0.5}, {"noise": 0.3}, {"living_reward": -1.0}])
def test_backup_param_change_clears_converged(change):
    ctl = SimulationController()
    ctl.start()
    while ctl.tick():
        pass
    assert ctl.converged
    ctl.update_params(**change)
    assert not ctl.converged
    assert ctl.step() > ctl.params.threshold
    assert not ctl.converged


def test_q_learning_param_change_keeps_converged():
    ctl = SimulationController()
    ctl.start()
    while ctl.tick():
        pass
    ctl.update_params(alpha=0.3, epsilon=0.5)
    assert ctl.converged


def test_listeners_see_immutable_snapshots():
    ctl = SimulationController(params=SimulationParams())
    snaps = []
    ctl.subscribe(snaps.append)
    ctl.step()
    ctl.step()
    assert [s.step for s in snaps] == [1, 2]
    assert snaps[0].grid is not snaps[1].grid
    assert snaps[0].history[-1].step == 1
    assert not np.array_equal(snaps[0].grid.values, snaps[1].grid.values)
