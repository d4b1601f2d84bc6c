from __future__ import annotations

import time
from typing import Callable, Optional

from gridlab.core.timers import Timer

from .controller import SimulationController


class Scheduler:
    """
    Drives `controller.tick()` on the controller's cadence until it stops
    running (pause, or value-iteration convergence) or `max_ticks` is reached.
    Tests can pass a no-op `sleep` to tick synchronously.
    """

    def __init__(self, controller: SimulationController, sleep: Callable[[float], None] = time.sleep):
        self.controller = controller
        self._sleep = sleep

    def run(self, max_ticks: Optional[int] = None) -> int:
        ctl = self.controller
        ctl.start()
        ticks = 0
        while ctl.running and (max_ticks is None or ticks < max_ticks):
            t = Timer()
            ctl.tick()
            ticks += 1
            remaining = t.remaining(ctl.interval)
            if ctl.running and remaining > 0:
                self._sleep(remaining)
        ctl.stop()
        return ticks
