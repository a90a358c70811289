"""Client-side controller wiring tracker, detector, monitor and uploads."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from ..collision import CollisionDetector, CollisionMonitor
from ..config import (
    BLOCK_START_ON_VIOLATION,
    COLLISION_CHECK_INTERVAL_S,
    STOP_ON_MIDWALK_VIOLATION,
)
from ..errors import (
    ClaimStartBlockedError,
    ClaimUploadError,
    TrackerStateError,
    UploadInProgressError,
)
from ..geo.polygon import ring_to_wkt
from ..models import (
    AuthorizationStatus,
    ClaimUploadRequest,
    CollisionResult,
    GeoFix,
    SavedWalk,
    Territory,
    WarningLevel,
)
from ..tracking import (
    FixOutcome,
    PathTracker,
    TrackerConfig,
    TrackerSnapshot,
    TrackerState,
    WalkStore,
)
from ..tracking.tracker import PathValidator


class ClaimBackend(Protocol):
    def upload_territory(self, request: ClaimUploadRequest) -> str: ...

    def increment_distance_walked(self, owner_id: str, delta_m: float) -> float: ...

    def fetch_territories(self, *, refresh: bool = False) -> List[Territory]: ...


@dataclass(slots=True)
class ClaimSessionConfig:
    block_start_on_violation: bool = BLOCK_START_ON_VIOLATION
    stop_on_midwalk_violation: bool = STOP_ON_MIDWALK_VIOLATION
    check_interval_s: float = COLLISION_CHECK_INTERVAL_S
    logger: logging.Logger | None = None


def build_upload_request(
    owner_id: str,
    snapshot: TrackerSnapshot,
    attempt_id: Optional[str] = None,
) -> ClaimUploadRequest:
    """Build the upload payload for a validated tracker snapshot."""

    polygon = snapshot.validated_polygon
    if polygon is None:
        raise TrackerStateError("No validated polygon to upload")
    return ClaimUploadRequest(
        owner_id=owner_id,
        path=list(snapshot.path),
        polygon_wkt=ring_to_wkt(polygon.ring),
        bounding_box=polygon.bounding_box,
        area=polygon.area,
        point_count=polygon.point_count,
        started_at=snapshot.started_at,
        completed_at=datetime.now(timezone.utc),
        distance_walked=snapshot.total_distance,
        attempt_id=attempt_id,
    )


class ClaimSession:
    """One player's claim workflow.

    Start is refused inside foreign territory; mid-walk violations only warn
    unless ``stop_on_midwalk_violation`` is set. Uploads run on a single
    worker thread and at most one may be in flight.
    """

    def __init__(
        self,
        owner_id: str,
        backend: ClaimBackend,
        *,
        tracker_config: TrackerConfig | None = None,
        store: WalkStore | None = None,
        validator: PathValidator | None = None,
        detector: CollisionDetector | None = None,
        config: ClaimSessionConfig | None = None,
    ) -> None:
        self.owner_id = owner_id
        self.config = config or ClaimSessionConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._backend = backend
        self.tracker = PathTracker(
            tracker_config,
            store=store,
            validator=validator,
            distance_sink=self._record_distance,
        )
        self.detector = detector or CollisionDetector()
        self._collision_listeners: List[Callable[[CollisionResult], None]] = []
        self.monitor = CollisionMonitor(
            self.detector,
            self.tracker.snapshot,
            lambda: self.owner_id,
            interval_s=self.config.check_interval_s,
            on_result=self._on_collision,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="claim-upload"
        )
        self._upload_lock = threading.Lock()
        self._upload_in_flight = False
        self._upload_error: Optional[ClaimUploadError] = None
        self._attempt_id: Optional[str] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def latest_collision(self) -> CollisionResult:
        return self.monitor.latest

    @property
    def upload_error(self) -> Optional[ClaimUploadError]:
        with self._upload_lock:
            return self._upload_error

    @property
    def upload_in_flight(self) -> bool:
        with self._upload_lock:
            return self._upload_in_flight

    def snapshot(self) -> TrackerSnapshot:
        return self.tracker.snapshot()

    def subscribe(
        self, callback: Callable[[TrackerSnapshot], None]
    ) -> Callable[[], None]:
        return self.tracker.subscribe(callback)

    def on_collision(self, callback: Callable[[CollisionResult], None]) -> None:
        self._collision_listeners.append(callback)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------
    def refresh_territories(self, *, refresh: bool = True) -> int:
        """Reload the comparison universe from the backend."""

        territories = self._backend.fetch_territories(refresh=refresh)
        self.detector.update_territories(territories)
        return len(territories)

    def load_suspended(self) -> Optional[SavedWalk]:
        return self.tracker.load_suspended()

    def start(self, fix: GeoFix | None = None) -> None:
        """Start a new claim, applying the start-of-walk policy.

        Raises:
            ClaimStartBlockedError: Location access is denied, or ``fix`` lies
                inside another player's territory.
        """

        authorization = self.tracker.snapshot().authorization
        if authorization in (
            AuthorizationStatus.DENIED,
            AuthorizationStatus.RESTRICTED,
        ):
            raise ClaimStartBlockedError(
                f"Location authorization is {authorization.value}"
            )
        if fix is not None and self.config.block_start_on_violation:
            result = self.detector.check_point(fix.coordinate, self.owner_id)
            if result.warning_level is WarningLevel.VIOLATION:
                self._log.info(
                    "Start blocked inside territory %s", result.offending_territory_id
                )
                raise ClaimStartBlockedError(
                    result.message or "Cannot start inside another territory"
                )
        self.tracker.start_tracking(fix)
        with self._upload_lock:
            self._upload_error = None
            self._attempt_id = None
        self.monitor.start()

    def resume(self, saved: SavedWalk | None = None) -> None:
        self.tracker.resume(saved)
        self.monitor.start()

    def discard_saved(self) -> None:
        self.tracker.discard_saved()

    def on_fix(self, fix: GeoFix) -> FixOutcome:
        outcome = self.tracker.on_fix(fix)
        if outcome is FixOutcome.CLOSED:
            self.monitor.stop()
        return outcome

    def on_authorization_changed(self, status: AuthorizationStatus) -> None:
        self.tracker.on_authorization_changed(status)

    def stop(self) -> float:
        self.monitor.stop()
        return self.tracker.stop_tracking()

    def submit_upload(self) -> "Future[str]":
        """Upload the validated polygon on the worker thread.

        Retrying after a failure reuses the same attempt id, so the server
        never stores the same walk twice.

        Raises:
            UploadInProgressError: Another upload has not finished yet.
            TrackerStateError: There is no validated polygon.
        """

        with self._upload_lock:
            if self._upload_in_flight:
                raise UploadInProgressError("An upload is already in progress")
            snapshot = self.tracker.snapshot()
            if snapshot.state is not TrackerState.VALIDATED:
                raise TrackerStateError(
                    f"Nothing to upload while {snapshot.state.value}"
                )
            if self._attempt_id is None:
                self._attempt_id = str(uuid.uuid4())
            request = build_upload_request(self.owner_id, snapshot, self._attempt_id)
            self._upload_in_flight = True
            self._upload_error = None
        return self._executor.submit(self._upload, request)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.monitor.stop()
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "ClaimSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------
    def _upload(self, request: ClaimUploadRequest) -> str:
        try:
            territory_id = self._backend.upload_territory(request)
        except ClaimUploadError as exc:
            self._log.warning("Upload failed (%s): %s", exc.code, exc)
            with self._upload_lock:
                self._upload_error = exc
                self._upload_in_flight = False
            raise
        except Exception:
            with self._upload_lock:
                self._upload_in_flight = False
            raise

        with self._upload_lock:
            self._attempt_id = None
            self._upload_in_flight = False
        self._finish_walk(request, territory_id)
        try:
            self.refresh_territories()
        except ClaimUploadError as exc:
            self._log.warning("Could not refresh territories after upload: %s", exc)
        return territory_id

    def _finish_walk(self, request: ClaimUploadRequest, territory_id: str) -> None:
        # The walk may have been stopped, or a new one started, while the
        # upload was in flight. The stored territory stands either way.
        snapshot = self.tracker.snapshot()
        if (
            snapshot.state is not TrackerState.VALIDATED
            or snapshot.started_at != request.started_at
        ):
            self._log.info(
                "Territory %s stored after its walk ended locally (%s)",
                territory_id,
                snapshot.state.value,
            )
            return
        try:
            self.tracker.complete_upload()
        except TrackerStateError as exc:
            self._log.info(
                "Territory %s stored; walk already finished: %s", territory_id, exc
            )

    def _record_distance(self, delta_m: float) -> None:
        if self._closed:
            self._log.debug("Session closed; dropping %.1f m walked", delta_m)
            return
        try:
            self._executor.submit(self._send_distance, delta_m)
        except RuntimeError:
            self._log.debug("Executor shut down; dropping %.1f m walked", delta_m)

    def _send_distance(self, delta_m: float) -> None:
        try:
            self._backend.increment_distance_walked(self.owner_id, delta_m)
        except ClaimUploadError as exc:
            self._log.warning("Failed to record %.1f m walked: %s", delta_m, exc)

    def _on_collision(self, result: CollisionResult) -> None:
        if (
            result.warning_level is WarningLevel.VIOLATION
            and self.config.stop_on_midwalk_violation
            and self.tracker.state is TrackerState.TRACKING
        ):
            self._log.warning(
                "Stopping claim: path entered territory %s",
                result.offending_territory_id,
            )
            self.monitor.stop()
            self.tracker.stop_tracking()
        for listener in list(self._collision_listeners):
            listener(result)


__all__ = [
    "ClaimBackend",
    "ClaimSession",
    "ClaimSessionConfig",
    "build_upload_request",
]
