from __future__ import annotations

import json
import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .gridworld import Cell, SimulationParams
from .transitions import Breakdown

log = logging.getLogger("gridlab.explain")

FALLBACK_MESSAGE = "Failed to fetch AI explanation. Please check your connection or API key."

SYSTEM_PROMPT = (
    "You are a patient reinforcement-learning tutor. Explain with clear, "
    "educational language and short paragraphs."
)


@dataclass(frozen=True)
class ExplainerConfig:
    # any OpenAI-compatible /v1/chat/completions endpoint
    url: str = "http://127.0.0.1:8000/v1/chat/completions"
    model: str = "gridlab-tutor"
    api_key: str = ""
    timeout: float = 20.0
    max_tokens: int = 400
    temperature: float = 0.2

    @classmethod
    def from_env(cls) -> "ExplainerConfig":
        d = cls()
        return cls(
            url=os.getenv("GRIDLAB_LLM_URL", d.url),
            model=os.getenv("GRIDLAB_LLM_MODEL", d.model),
            api_key=os.getenv("GRIDLAB_LLM_API_KEY", d.api_key),
            timeout=float(os.getenv("GRIDLAB_LLM_TIMEOUT", str(d.timeout))),
        )


def transition_rows(breakdown: Breakdown) -> List[Dict[str, Any]]:
    return [
        {"action": r.action.name, "probability": round(r.probability, 4), "value": round(r.successor_value, 4)}
        for r in breakdown.rows
    ]


def build_prompt(cell: Cell, breakdown: Breakdown, params: SimulationParams) -> str:
    return (
        "Context: we are visualizing the Bellman equation in a gridworld.\n"
        f"Target cell: ({cell.x}, {cell.y})\n"
        f"Current value: {cell.value:.4f}\n"
        f"Reward at this cell: {cell.reward}\n"
        f"Discount factor (gamma): {params.gamma}\n"
        f"Noise: {params.noise}\n"
        f"Transitions for action {breakdown.action.name} (noise included): "
        f"{json.dumps(transition_rows(breakdown))}\n\n"
        "Explain how the Bellman equation determines the value of this specific cell. "
        'Mention the concepts of "expected return" and "discounting". '
        "Keep it concise but mathematically intuitive."
    )


class ExplanationClient:
    """
    Plain-language explanations from a chat-completion service. Never raises:
    any transport, HTTP or payload error returns FALLBACK_MESSAGE.
    """

    def __init__(self, config: Optional[ExplainerConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or ExplainerConfig.from_env()
        self.session = session or requests.Session()
        self._pool: Optional[ThreadPoolExecutor] = None

    def explain(self, cell: Cell, breakdown: Breakdown, params: SimulationParams) -> str:
        cfg = self.config
        payload = {
            "model": cfg.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(cell, breakdown, params)},
            ],
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
        }
        headers = {"Authorization": f"Bearer {cfg.api_key}"} if cfg.api_key else {}
        try:
            resp = self.session.post(cfg.url, json=payload, headers=headers, timeout=cfg.timeout)
            resp.raise_for_status()
            text = resp.json()["choices"][0]["message"]["content"]
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            log.warning("Explanation request failed: %s", e)
            return FALLBACK_MESSAGE
        return str(text).strip() or FALLBACK_MESSAGE

    def submit(self, cell: Cell, breakdown: Breakdown, params: SimulationParams) -> "Future[str]":
        """Run `explain` on a background worker; callers keep stepping meanwhile."""
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gridlab-explain")
        return self._pool.submit(self.explain, cell, breakdown, params)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
        self.session.close()
