from __future__ import annotations

from collections import deque
from typing import Deque, List, NamedTuple, Optional

HISTORY_SIZE = 50


class HistoryPoint(NamedTuple):
    step: int
    delta: float


class ConvergenceTracker:
    """
    Fixed-capacity FIFO of (step, delta). Only deltas recorded with a
    threshold can raise the converged flag.
    """

    def __init__(self, capacity: int = HISTORY_SIZE):
        self._history: Deque[HistoryPoint] = deque(maxlen=capacity)
        self.converged = False

    def record(self, step: int, delta: float, threshold: Optional[float] = None) -> bool:
        self._history.append(HistoryPoint(step, float(delta)))
        if threshold is not None and delta < threshold:
            self.converged = True
        return self.converged

    def reset(self) -> None:
        self._history.clear()
        self.converged = False

    @property
    def history(self) -> List[HistoryPoint]:
        return list(self._history)

    @property
    def latest(self) -> Optional[HistoryPoint]:
        return self._history[-1] if self._history else None

    def __len__(self) -> int:
        return len(self._history)
