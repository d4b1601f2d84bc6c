#!/usr/bin/env python
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import typer

from gridlab.core.io import load_yaml, save_json
from gridlab.core.logs import get_logger
from gridlab.core.timers import timed
from gridlab.rl.controller import ALGORITHM_INFO, Algorithm, SimulationController
from gridlab.rl.explain import ExplanationClient
from gridlab.rl.gridworld import Action, SimulationParams
from gridlab.rl.render import render_breakdown, render_policy, render_values
from gridlab.rl.scheduler import Scheduler
from gridlab.rl.transitions import bellman_breakdown
from gridlab.rl.value_iteration import value_iteration

app = typer.Typer(add_completion=False)


def _load_cfg(path: Optional[str]) -> Tuple[SimulationParams, Dict[str, Any]]:
    d = load_yaml(path) if path else {}
    get_logger(level=str(d.get("log_level", "INFO")), log_file=d.get("log_file"))
    return SimulationParams.from_dict(d.get("params")), d


def _print_state(ctl: SimulationController) -> None:
    info = ALGORITHM_INFO[ctl.algorithm]
    typer.echo(f"{info['title']}: {info['formula']}")
    typer.echo(f" - steps: {ctl.step_count}, converged: {ctl.converged}")
    if ctl.algorithm == Algorithm.Q_LEARNING:
        typer.echo(f" - episodes: {ctl.agent.episodes}, epsilon: {ctl.agent.epsilon:.3f}")
    typer.echo(" - values:")
    typer.echo(render_values(ctl.grid))
    typer.echo(" - policy:")
    agent = ctl.agent.position if ctl.algorithm == Algorithm.Q_LEARNING else None
    typer.echo(render_policy(ctl.grid, agent=agent))
    tail = ", ".join(f"{p.step}:{p.delta:.2e}" for p in ctl.history[-5:])
    typer.echo(f" - last deltas: {tail}")


@app.command()
def solve(
    algorithm: Algorithm = typer.Option(Algorithm.VALUE_ITERATION, help="solver to step"),
    steps: int = typer.Option(200, help="manual steps (value iteration stops on convergence)"),
    config: Optional[str] = typer.Option(None, help="YAML settings file"),
    seed: int = typer.Option(0, help="seed for the Q-learning agent"),
    history_out: Optional[str] = typer.Option(None, help="write the delta history and final grid as JSON"),
):
    params, _ = _load_cfg(config)
    ctl = SimulationController(params=params, algorithm=algorithm, seed=seed)
    with timed(f"{algorithm.value} x{steps}"):
        for _ in range(steps):
            ctl.step()
            if ctl.converged:
                break
    _print_state(ctl)
    if history_out:
        save_json(
            history_out,
            {"history": [p._asdict() for p in ctl.history], "values": ctl.grid.values, "policy": ctl.grid.policy},
        )


@app.command()
def run(
    algorithm: Algorithm = typer.Option(Algorithm.VALUE_ITERATION, help="solver to run"),
    ticks: int = typer.Option(100, help="maximum ticks"),
    config: Optional[str] = typer.Option(None, help="YAML settings file"),
    seed: int = typer.Option(0, help="seed for the Q-learning agent"),
):
    params, _ = _load_cfg(config)
    ctl = SimulationController(params=params, algorithm=algorithm, seed=seed)
    ctl.subscribe(lambda s: typer.echo(f"step {s.step:4d}  delta={s.history[-1].delta:.3e}"))
    n = Scheduler(ctl).run(max_ticks=ticks)
    typer.echo(f"ran {n} ticks")
    _print_state(ctl)


def _converged_breakdown(x: int, y: int, action: Optional[str], config: Optional[str]):
    params, _ = _load_cfg(config)
    ctl = SimulationController(params=params)
    grid, info = value_iteration(ctl.grid, params)
    cell = grid.cell(x, y)
    if not grid.is_active(x, y):
        typer.echo(f"{cell.type.name} state: fixed value V = R = {cell.reward}")
        raise typer.Exit()
    chosen = Action[action.upper()] if action else (cell.policy if cell.policy is not None else Action.UP)
    bd = bellman_breakdown(grid, x, y, chosen, params)
    typer.echo(f"value iteration: iters={info['iters']}, residual={info['residual']:.3e}")
    typer.echo(render_breakdown(bd, params.gamma))
    return cell, bd, params


@app.command()
def breakdown(
    x: int,
    y: int,
    action: Optional[str] = typer.Option(None, help="UP, DOWN, LEFT or RIGHT; defaults to the cell's policy"),
    config: Optional[str] = typer.Option(None, help="YAML settings file"),
):
    _converged_breakdown(x, y, action, config)


@app.command()
def explain(
    x: int,
    y: int,
    config: Optional[str] = typer.Option(None, help="YAML settings file"),
):
    cell, bd, params = _converged_breakdown(x, y, None, config)
    client = ExplanationClient()
    try:
        typer.echo(client.explain(cell, bd, params))
    finally:
        client.close()


if __name__ == "__main__":
    app()
