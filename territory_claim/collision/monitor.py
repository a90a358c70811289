"""Background task re-checking the walked path at a fixed interval."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ..config import COLLISION_CHECK_INTERVAL_S
from ..models import CollisionResult, WarningLevel
from ..tracking.state import TrackerSnapshot
from .detector import CollisionDetector

SnapshotProvider = Callable[[], TrackerSnapshot]
ResultCallback = Callable[[CollisionResult], None]


class CollisionMonitor:
    """Periodically run a comprehensive path check on its own thread.

    The monitor reads immutable tracker snapshots, so fix ingestion never
    waits on it. ``stop`` cancels the loop and joins the worker.
    """

    def __init__(
        self,
        detector: CollisionDetector,
        snapshot_provider: SnapshotProvider,
        owner_provider: Callable[[], Optional[str]],
        *,
        interval_s: float = COLLISION_CHECK_INTERVAL_S,
        on_result: ResultCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._detector = detector
        self._snapshot_provider = snapshot_provider
        self._owner_provider = owner_provider
        self._interval_s = interval_s
        self._on_result = on_result
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._latest = CollisionResult.safe()

    @property
    def latest(self) -> CollisionResult:
        with self._lock:
            return self._latest

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event = threading.Event()
            self._latest = CollisionResult.safe()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="collision-monitor",
                daemon=True,
            )
            self._thread.start()
        self._log.debug("Collision monitor started (every %.1fs)", self._interval_s)

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def check_now(self) -> CollisionResult:
        """Run one check synchronously and publish the result."""

        snapshot = self._snapshot_provider()
        if not snapshot.path:
            result = CollisionResult.safe()
        else:
            result = self._detector.check_path_comprehensive(
                snapshot.path, self._owner_provider()
            )
        self._publish(result)
        return result

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval_s):
            try:
                self.check_now()
            except Exception:
                self._log.exception("Collision check failed")

    def _publish(self, result: CollisionResult) -> None:
        with self._lock:
            previous = self._latest
            self._latest = result
        if result.warning_level != previous.warning_level:
            log = (
                self._log.warning
                if result.warning_level >= WarningLevel.WARNING
                else self._log.info
            )
            log(
                "Collision level %s -> %s (%s)",
                previous.warning_level.label,
                result.warning_level.label,
                result.message or "clear",
            )
        if self._on_result is not None:
            self._on_result(result)


__all__ = ["CollisionMonitor"]
