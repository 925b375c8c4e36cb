from __future__ import annotations

import threading
from typing import Any, Optional

from sessionguard.core.sessions.registry import SessionRegistry


class ExpirySweeper:
    """
    Background thread that calls registry.sweep_expired() on a fixed
    interval, so idle registries self-clean without lookups. When a lockout
    guard is given, its stale records are pruned on the same tick.
    """

    def __init__(self, registry: SessionRegistry, *, interval_seconds: Optional[float] = None, lockout: Any = None, logger=None):
        self.registry = registry
        self.interval_seconds = float(interval_seconds if interval_seconds is not None else registry.cfg.sweep_interval_seconds)
        self.lockout = lockout
        self.logger = logger
        self.runs = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="session-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2.0)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        """Returns the number of expired sessions removed."""
        try:
            return self.registry.sweep_expired()
        except Exception as e:  # noqa: BLE001
            if self.logger:
                self.logger.warning(f"Session sweep error: {e}")
            return 0
        finally:
            self._prune_lockouts()
            self.runs += 1

    def _prune_lockouts(self) -> None:
        if self.lockout is None:
            return
        try:
            self.lockout.prune()
        except Exception as e:  # noqa: BLE001
            if self.logger:
                self.logger.warning(f"Lockout prune error: {e}")

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()
