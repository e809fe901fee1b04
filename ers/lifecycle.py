from __future__ import annotations

import logging
import os
import sys
from typing import Callable

log = logging.getLogger(__name__)


class ShutdownTrigger:
    """Hard stop for the process.

    Used by /quitquitquit and by fatal startup errors. There is no graceful
    drain: in-flight requests are dropped. ``exit_func`` defaults to
    ``os._exit`` so the exit works from a worker thread; tests pass a
    recorder instead.
    """

    def __init__(self, exit_code: int = 1, exit_func: Callable[[int], None] = os._exit) -> None:
        self.exit_code = exit_code
        self._exit = exit_func
        self.triggered = False

    def trigger(self, reason: str, exit_code: int | None = None) -> None:
        code = self.exit_code if exit_code is None else exit_code
        self.triggered = True
        log.warning("Shutting down (exit %d): %s", code, reason)
        _flush()
        self._exit(code)


def _flush() -> None:
    # os._exit skips interpreter cleanup, so push buffered output out first.
    for handler in logging.getLogger().handlers:
        try:
            handler.flush()
        except Exception:
            pass
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except Exception:
            pass
