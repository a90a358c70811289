"""State machine turning a stream of GPS fixes into a candidate territory."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence, Union

from ..config import (
    TRACKER_CLOSURE_RADIUS_M,
    TRACKER_MAX_ACCURACY_M,
    TRACKER_MIN_CLOSURE_DISTANCE_M,
    TRACKER_MIN_POINT_SPACING_M,
    TRACKER_MINIMUM_VERTICES,
    TRACKER_SPEED_WARNING_KMH,
    TRACKER_SPEED_WARNING_TTL_S,
)
from ..errors import GeometryError, TrackerStateError
from ..geo.distance import great_circle_distance, path_length
from ..models import (
    AuthorizationStatus,
    GeoFix,
    LatLon,
    SavedWalk,
    TrackedPath,
    ValidatedPolygon,
)
from ..validation import GeometryValidator
from .persistence import WalkStore
from .state import FixOutcome, TrackerSnapshot, TrackerState

Observer = Callable[[TrackerSnapshot], None]
DistanceSink = Callable[[float], None]


class PathValidator(Protocol):
    def validate(self, path: TrackedPath) -> ValidatedPolygon: ...


@dataclass(slots=True)
class TrackerConfig:
    """Thresholds applied to incoming fixes."""

    max_accuracy_m: float = TRACKER_MAX_ACCURACY_M
    min_point_spacing_m: float = TRACKER_MIN_POINT_SPACING_M
    minimum_vertices: int = TRACKER_MINIMUM_VERTICES
    closure_radius_m: float = TRACKER_CLOSURE_RADIUS_M
    min_closure_distance_m: float = TRACKER_MIN_CLOSURE_DISTANCE_M
    speed_warning_kmh: float = TRACKER_SPEED_WARNING_KMH
    speed_warning_ttl_s: float = TRACKER_SPEED_WARNING_TTL_S


class PathTracker:
    """Record a walked boundary and detect when it closes into a loop.

    Commands are serialised by a re-entrant lock. Observers and the distance
    sink are invoked after the lock is released, so they may call back into
    the tracker (e.g. :meth:`snapshot`).
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        *,
        store: WalkStore | None = None,
        validator: PathValidator | None = None,
        distance_sink: DistanceSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config or TrackerConfig()
        self._store = store
        self._validator = validator or GeometryValidator()
        self._distance_sink = distance_sink
        self._clock = clock
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._lock = threading.RLock()
        self._observers: List[Observer] = []

        self._state = TrackerState.IDLE
        self._points: List[LatLon] = []
        self._total_distance = 0.0
        self._last_fix_ts: Optional[float] = None
        self._started_at: Optional[datetime] = None
        self._validated: Optional[ValidatedPolygon] = None
        self._validation_error: Optional[GeometryError] = None
        self._speed_warning: Optional[str] = None
        self._speed_warning_until = 0.0
        self._pending_walk: Optional[SavedWalk] = None
        self._authorization = AuthorizationStatus.NOT_DETERMINED

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def state(self) -> TrackerState:
        return self._state

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""

        with self._lock:
            self._observers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._observers:
                    self._observers.remove(callback)

        return _unsubscribe

    def snapshot(self) -> TrackerSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def tracked_path(self) -> TrackedPath:
        with self._lock:
            return TrackedPath(
                points=tuple(self._points),
                total_distance=self._total_distance,
                is_closed=self._state
                in (TrackerState.CLOSED, TrackerState.VALIDATED),
            )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def start_tracking(self, fix: GeoFix | None = None) -> None:
        """Begin a new claim attempt, discarding any earlier path."""

        emitted: List[TrackerSnapshot] = []
        with self._lock:
            if self._state not in (TrackerState.IDLE, TrackerState.SUSPENDED):
                raise TrackerStateError(
                    f"Cannot start tracking while {self._state.value}"
                )
            self._reset_locked()
            self._clear_store()
            self._pending_walk = None
            self._validation_error = None
            self._started_at = datetime.now(timezone.utc)
            self._state = TrackerState.TRACKING
            if fix is not None and self._accuracy_ok(fix):
                self._points.append(fix.coordinate)
                self._last_fix_ts = fix.timestamp
                self._persist_locked()
            self._log.info("Tracking started with %d vertices", len(self._points))
            emitted.append(self._snapshot_locked())
        self._emit(emitted)

    def on_fix(self, fix: GeoFix) -> FixOutcome:
        """Feed one GPS fix; returns what happened to it."""

        emitted: List[TrackerSnapshot] = []
        credit = 0.0
        with self._lock:
            if self._state is not TrackerState.TRACKING:
                return FixOutcome.IGNORED
            if not self._accuracy_ok(fix):
                self._log.debug(
                    "Rejected fix with accuracy %.1f m (limit %.1f m)",
                    fix.accuracy,
                    self.config.max_accuracy_m,
                )
                return FixOutcome.REJECTED_ACCURACY

            coordinate = fix.coordinate
            step = 0.0
            if self._points:
                previous = self._points[-1]
                if coordinate == previous:
                    return FixOutcome.DUPLICATE
                step = great_circle_distance(previous, coordinate)
                if (
                    self.config.min_point_spacing_m > 0
                    and step < self.config.min_point_spacing_m
                ):
                    return FixOutcome.DUPLICATE
                self._check_speed_locked(step, fix.timestamp)

            self._points.append(coordinate)
            self._total_distance += step
            self._last_fix_ts = fix.timestamp

            if not self._closes_loop_locked():
                self._persist_locked()
                emitted.append(self._snapshot_locked())
                outcome = FixOutcome.ACCEPTED
            else:
                self._snap_closure_locked(step)
                self._persist_locked()
                self._state = TrackerState.CLOSED
                self._log.info(
                    "Loop closed with %d vertices after %.1f m",
                    len(self._points),
                    self._total_distance,
                )
                emitted.append(self._snapshot_locked())
                credit = self._validate_locked(emitted)
                outcome = FixOutcome.CLOSED
        self._emit(emitted)
        self._credit(credit)
        return outcome

    def stop_tracking(self) -> float:
        """Abandon the current attempt and return the distance walked."""

        emitted: List[TrackerSnapshot] = []
        with self._lock:
            if self._state is TrackerState.IDLE:
                return 0.0
            distance = self._total_distance
            self._clear_store()
            self._pending_walk = None
            self._reset_locked()
            self._state = TrackerState.IDLE
            self._log.info("Tracking stopped after %.1f m", distance)
            emitted.append(self._snapshot_locked())
        self._emit(emitted)
        self._credit(distance)
        return distance

    def resume(self, saved: Union[SavedWalk, Sequence[LatLon], None] = None) -> None:
        """Continue an interrupted walk.

        Without an argument the walk found by :meth:`load_suspended` is used.
        """

        emitted: List[TrackerSnapshot] = []
        with self._lock:
            if self._state not in (TrackerState.IDLE, TrackerState.SUSPENDED):
                raise TrackerStateError(f"Cannot resume while {self._state.value}")
            if saved is None:
                saved = self._pending_walk
            if saved is None:
                raise TrackerStateError("There is no saved walk to resume")

            if isinstance(saved, SavedWalk):
                points = list(saved.path)
                distance = saved.total_distance
                started_at = saved.started_at
            else:
                points = [(float(lat), float(lon)) for lat, lon in saved]
                distance = 0.0
                started_at = None
            if distance <= 0:
                distance = path_length(points)

            self._reset_locked()
            self._points = points
            self._total_distance = distance
            self._started_at = started_at or datetime.now(timezone.utc)
            self._pending_walk = None
            self._validation_error = None
            self._state = TrackerState.TRACKING
            self._persist_locked()
            self._log.info(
                "Resumed walk with %d vertices and %.1f m", len(points), distance
            )
            emitted.append(self._snapshot_locked())
        self._emit(emitted)

    def discard_saved(self) -> None:
        emitted: List[TrackerSnapshot] = []
        with self._lock:
            self._clear_store()
            self._pending_walk = None
            if self._state is TrackerState.SUSPENDED:
                self._state = TrackerState.IDLE
                emitted.append(self._snapshot_locked())
        self._emit(emitted)

    def load_suspended(self) -> Optional[SavedWalk]:
        """Look for a persisted walk; enter ``suspended`` when one exists."""

        emitted: List[TrackerSnapshot] = []
        with self._lock:
            if self._state is not TrackerState.IDLE or self._store is None:
                return None
            walk = self._store.load()
            if walk is None:
                return None
            self._pending_walk = walk
            self._state = TrackerState.SUSPENDED
            self._log.info("Found unfinished walk with %d vertices", len(walk.path))
            emitted.append(self._snapshot_locked())
        self._emit(emitted)
        return walk

    def complete_upload(self) -> float:
        """Finish a validated attempt once its territory is stored."""

        emitted: List[TrackerSnapshot] = []
        with self._lock:
            if self._state is not TrackerState.VALIDATED:
                raise TrackerStateError(
                    f"Nothing to complete while {self._state.value}"
                )
            distance = self._total_distance
            self._clear_store()
            self._reset_locked()
            self._state = TrackerState.IDLE
            emitted.append(self._snapshot_locked())
        self._emit(emitted)
        self._credit(distance)
        return distance

    def on_authorization_changed(self, status: AuthorizationStatus) -> None:
        emitted: List[TrackerSnapshot] = []
        with self._lock:
            status = AuthorizationStatus(status)
            if status is self._authorization:
                return
            self._authorization = status
            if status in (AuthorizationStatus.DENIED, AuthorizationStatus.RESTRICTED):
                self._log.warning("Location authorization is %s", status.value)
            emitted.append(self._snapshot_locked())
        self._emit(emitted)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------
    def _accuracy_ok(self, fix: GeoFix) -> bool:
        return 0 <= fix.accuracy <= self.config.max_accuracy_m

    def _check_speed_locked(self, step: float, timestamp: float) -> None:
        if self._last_fix_ts is None:
            return
        elapsed = timestamp - self._last_fix_ts
        if elapsed <= 0:
            return
        speed_kmh = step / elapsed * 3.6
        if speed_kmh > self.config.speed_warning_kmh:
            self._speed_warning = (
                f"Moving too fast ({speed_kmh:.0f} km/h); "
                "territory must be claimed on foot"
            )
            self._speed_warning_until = self._clock() + self.config.speed_warning_ttl_s
            self._log.warning("Speed %.1f km/h above walking ceiling", speed_kmh)

    def _closes_loop_locked(self) -> bool:
        if len(self._points) < max(self.config.minimum_vertices, 2):
            return False
        if self._total_distance < self.config.min_closure_distance_m:
            return False
        gap = great_circle_distance(self._points[-1], self._points[0])
        return gap <= self.config.closure_radius_m

    def _snap_closure_locked(self, last_step: float) -> None:
        if len(self._points) < 2:
            return
        before = self._points[-2]
        self._points[-1] = self._points[0]
        self._total_distance += great_circle_distance(before, self._points[0])
        self._total_distance -= last_step

    def _validate_locked(self, emitted: List[TrackerSnapshot]) -> float:
        """Run the validator once; returns distance to credit on failure."""

        path = TrackedPath(
            points=tuple(self._points),
            total_distance=self._total_distance,
            is_closed=True,
        )
        try:
            polygon = self._validator.validate(path)
        except GeometryError as exc:
            distance = self._total_distance
            self._validation_error = exc
            self._state = TrackerState.INVALID
            self._log.info("Validation failed (%s): %s", exc.kind.value, exc)
            emitted.append(self._snapshot_locked())
            self._clear_store()
            self._reset_locked()
            self._state = TrackerState.IDLE
            emitted.append(self._snapshot_locked())
            return distance

        self._validated = polygon
        self._state = TrackerState.VALIDATED
        self._log.info("Validated territory of %.0f m²", polygon.area)
        emitted.append(self._snapshot_locked())
        return 0.0

    def _reset_locked(self) -> None:
        self._points = []
        self._total_distance = 0.0
        self._last_fix_ts = None
        self._started_at = None
        self._validated = None
        self._speed_warning = None
        self._speed_warning_until = 0.0

    def _persist_locked(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self._points, self._total_distance, self._started_at)
        except OSError as exc:
            self._log.warning("Failed to persist walk: %s", exc)

    def _clear_store(self) -> None:
        if self._store is None:
            return
        try:
            self._store.clear()
        except OSError as exc:
            self._log.warning("Failed to clear saved walk: %s", exc)

    def _snapshot_locked(self) -> TrackerSnapshot:
        warning = self._speed_warning
        if warning is not None and self._clock() >= self._speed_warning_until:
            self._speed_warning = None
            warning = None
        validated = self._validated
        return TrackerSnapshot(
            state=self._state,
            path=tuple(self._points),
            total_distance=self._total_distance,
            calculated_area=validated.area if validated else 0.0,
            validation_passed=validated is not None,
            validation_error=self._validation_error,
            validated_polygon=validated,
            speed_warning=warning,
            started_at=self._started_at,
            pending_walk=self._pending_walk,
            authorization=self._authorization,
        )

    # ------------------------------------------------------------------
    # Outside the lock
    # ------------------------------------------------------------------
    def _emit(self, snapshots: List[TrackerSnapshot]) -> None:
        if not snapshots:
            return
        with self._lock:
            observers = list(self._observers)
        for snapshot in snapshots:
            for observer in observers:
                try:
                    observer(snapshot)
                except Exception:
                    self._log.exception("Tracker observer failed")

    def _credit(self, distance: float) -> None:
        if distance <= 0 or self._distance_sink is None:
            return
        try:
            self._distance_sink(distance)
        except Exception:
            self._log.exception("Failed to record %.1f m walked", distance)


__all__ = ["PathTracker", "TrackerConfig", "PathValidator"]
