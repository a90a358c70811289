"""Behavioural tests for the PathTracker state machine."""

from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from territory_claim.errors import GeometryErrorKind, TrackerStateError
from territory_claim.models import AuthorizationStatus, GeoFix
from territory_claim.tracking import (
    FixOutcome,
    PathTracker,
    TrackerConfig,
    TrackerSnapshot,
    TrackerState,
    WalkStore,
)

from conftest import make_fix, square_walk


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _tracker(**kwargs) -> tuple[PathTracker, List[float]]:
    credited: List[float] = []
    tracker = PathTracker(distance_sink=credited.append, **kwargs)
    return tracker, credited


def test_happy_path_square_validates_with_expected_area() -> None:
    tracker, credited = _tracker()
    fixes = square_walk(50.0)
    tracker.start_tracking(fixes[0])
    outcomes = [tracker.on_fix(fix) for fix in fixes[1:]]

    assert outcomes[-1] is FixOutcome.CLOSED
    assert all(o is FixOutcome.ACCEPTED for o in outcomes[:-1])
    snap = tracker.snapshot()
    assert snap.state is TrackerState.VALIDATED
    assert snap.validation_passed
    assert snap.calculated_area == pytest.approx(2_500.0, rel=0.01)
    assert snap.total_distance == pytest.approx(200.0, rel=1e-3)
    assert credited == []

    distance = tracker.complete_upload()
    assert distance == pytest.approx(200.0, rel=1e-3)
    assert credited == [distance]
    assert tracker.state is TrackerState.IDLE


def test_closure_snaps_last_vertex_to_first() -> None:
    tracker, _ = _tracker()
    tracker.start_tracking(make_fix(0, 0, 0))
    tracker.on_fix(make_fix(60, 0, 30))
    tracker.on_fix(make_fix(60, 60, 60))
    tracker.on_fix(make_fix(0, 60, 90))
    outcome = tracker.on_fix(make_fix(4, 3, 120))

    assert outcome is FixOutcome.CLOSED
    snap = tracker.snapshot()
    assert snap.path[-1] == snap.path[0]
    assert snap.state is TrackerState.VALIDATED


def test_closure_requires_minimum_vertices() -> None:
    tracker, _ = _tracker()
    tracker.start_tracking(make_fix(0, 0, 0))
    assert tracker.on_fix(make_fix(5, 0, 10)) is FixOutcome.ACCEPTED
    assert tracker.state is TrackerState.TRACKING


def _dense_square_walk(size_m: int) -> List[GeoFix]:
    """One fix per metre, one second apart, around a square."""

    legs = [
        ((0, 0), (1, 0)),
        ((size_m, 0), (0, 1)),
        ((size_m, size_m), (-1, 0)),
        ((0, size_m), (0, -1)),
    ]
    fixes: List[GeoFix] = []
    for (north, east), (dn, de) in legs:
        for step in range(size_m):
            fixes.append(
                make_fix(north + dn * step, east + de * step, float(len(fixes)))
            )
    fixes.append(make_fix(0, 0, float(len(fixes))))
    return fixes


def test_dense_fixes_near_start_do_not_close_early() -> None:
    tracker, _ = _tracker()
    fixes = _dense_square_walk(50)
    tracker.start_tracking(fixes[0])

    outcomes = []
    for fix in fixes[1:]:
        outcomes.append(tracker.on_fix(fix))
        if outcomes[-1] is FixOutcome.CLOSED:
            break

    assert outcomes[:10] == [FixOutcome.ACCEPTED] * 10
    assert outcomes[-1] is FixOutcome.CLOSED
    assert len(outcomes) > 150
    snap = tracker.snapshot()
    assert snap.state is TrackerState.VALIDATED
    assert snap.validation_error is None
    assert snap.calculated_area == pytest.approx(2_500.0, rel=0.01)


def test_closure_waits_for_minimum_walked_distance() -> None:
    tracker, _ = _tracker(config=TrackerConfig(min_closure_distance_m=100.0))
    tracker.start_tracking(make_fix(0, 0, 0))
    tracker.on_fix(make_fix(30, 0, 20))
    tracker.on_fix(make_fix(30, 30, 40))
    assert tracker.on_fix(make_fix(3, 3, 60)) is FixOutcome.ACCEPTED
    assert tracker.state is TrackerState.TRACKING


def test_closure_is_deterministic() -> None:
    def run() -> TrackerSnapshot:
        tracker, _ = _tracker()
        fixes = square_walk(50.0)
        tracker.start_tracking(fixes[0])
        for fix in fixes[1:]:
            tracker.on_fix(fix)
        return tracker.snapshot()

    first, second = run(), run()
    assert first.path == second.path
    assert first.validated_polygon == second.validated_polygon


def test_abandoned_walk_reports_distance_without_territory() -> None:
    tracker, credited = _tracker()
    tracker.start_tracking(make_fix(0, 0, 0))
    tracker.on_fix(make_fix(60, 0, 40))
    tracker.on_fix(make_fix(120, 0, 80))

    distance = tracker.stop_tracking()

    assert distance == pytest.approx(120.0, rel=1e-3)
    assert credited == [distance]
    snap = tracker.snapshot()
    assert snap.state is TrackerState.IDLE
    assert snap.path == ()
    assert snap.validated_polygon is None


def test_stop_with_single_fix_reports_zero() -> None:
    tracker, credited = _tracker()
    tracker.start_tracking(make_fix(0, 0, 0))
    assert tracker.stop_tracking() == 0.0
    assert credited == []
    assert tracker.stop_tracking() == 0.0


def test_inaccurate_and_duplicate_fixes_are_dropped() -> None:
    tracker, _ = _tracker()
    tracker.start_tracking(make_fix(0, 0, 0))

    assert tracker.on_fix(make_fix(10, 0, 5, accuracy=80.0)) is FixOutcome.REJECTED_ACCURACY
    assert tracker.on_fix(make_fix(10, 0, 5, accuracy=-1.0)) is FixOutcome.REJECTED_ACCURACY
    assert tracker.on_fix(make_fix(0, 0, 6)) is FixOutcome.DUPLICATE
    assert tracker.snapshot().point_count == 1


def test_min_point_spacing_skips_close_fixes() -> None:
    tracker, _ = _tracker(config=TrackerConfig(min_point_spacing_m=5.0))
    tracker.start_tracking(make_fix(0, 0, 0))
    assert tracker.on_fix(make_fix(2, 0, 5)) is FixOutcome.DUPLICATE
    assert tracker.on_fix(make_fix(20, 0, 20)) is FixOutcome.ACCEPTED


def test_fixes_ignored_when_not_tracking() -> None:
    tracker, _ = _tracker()
    assert tracker.on_fix(make_fix(0, 0, 0)) is FixOutcome.IGNORED


def test_start_rejected_while_tracking() -> None:
    tracker, _ = _tracker()
    tracker.start_tracking()
    with pytest.raises(TrackerStateError):
        tracker.start_tracking()


def test_speed_warning_is_transient_and_fix_still_recorded() -> None:
    clock = FakeClock()
    tracker, _ = _tracker(clock=clock)
    tracker.start_tracking(make_fix(0, 0, 0))

    outcome = tracker.on_fix(make_fix(100, 0, 10))  # 36 km/h

    assert outcome is FixOutcome.ACCEPTED
    snap = tracker.snapshot()
    assert snap.speed_warning is not None
    assert snap.point_count == 2

    clock.now += 3.5
    assert tracker.snapshot().speed_warning is None


def test_walking_speed_raises_no_warning() -> None:
    tracker, _ = _tracker(clock=FakeClock())
    tracker.start_tracking(make_fix(0, 0, 0))
    tracker.on_fix(make_fix(40, 0, 30))  # 4.8 km/h
    assert tracker.snapshot().speed_warning is None


def test_validation_failure_resets_to_idle_and_keeps_error(tmp_path: Path) -> None:
    store = WalkStore(tmp_path / "walk.json")
    tracker, credited = _tracker(
        store=store, config=TrackerConfig(min_closure_distance_m=0.0)
    )
    states: List[TrackerState] = []
    tracker.subscribe(lambda snap: states.append(snap.state))

    tracker.start_tracking(make_fix(0, 0, 0))
    tracker.on_fix(make_fix(8, 0, 10))
    outcome = tracker.on_fix(make_fix(2, 0, 20))

    assert outcome is FixOutcome.CLOSED
    snap = tracker.snapshot()
    assert snap.state is TrackerState.IDLE
    assert snap.validation_error is not None
    assert snap.validation_error.kind is GeometryErrorKind.TOO_FEW_POINTS
    assert TrackerState.INVALID in states
    assert states[-1] is TrackerState.IDLE
    assert credited and credited[0] > 0
    assert store.load() is None


def test_walk_persists_and_resumes(tmp_path: Path) -> None:
    store = WalkStore(tmp_path / "walk.json")
    tracker, _ = _tracker(store=store)
    tracker.start_tracking(make_fix(0, 0, 0))
    tracker.on_fix(make_fix(50, 0, 30))
    tracker.on_fix(make_fix(50, 50, 60))
    saved_path = tracker.snapshot().path

    restarted, _ = _tracker(store=store)
    walk = restarted.load_suspended()

    assert walk is not None
    assert restarted.state is TrackerState.SUSPENDED
    assert restarted.snapshot().pending_walk == walk
    restarted.resume()
    snap = restarted.snapshot()
    assert snap.state is TrackerState.TRACKING
    assert snap.path == saved_path
    assert snap.total_distance == pytest.approx(100.0, rel=1e-3)

    restarted.on_fix(make_fix(0, 50, 90))
    assert restarted.on_fix(make_fix(0, 0, 120)) is FixOutcome.CLOSED
    assert restarted.state is TrackerState.VALIDATED


def test_discard_saved_returns_to_idle(tmp_path: Path) -> None:
    store = WalkStore(tmp_path / "walk.json")
    store.save([(51.5, -0.12), (51.5005, -0.12)], 55.0)
    tracker, _ = _tracker(store=store)

    assert tracker.load_suspended() is not None
    tracker.discard_saved()

    assert tracker.state is TrackerState.IDLE
    assert store.load() is None
    with pytest.raises(TrackerStateError):
        tracker.resume()


def test_resume_from_coordinates_recomputes_distance() -> None:
    tracker, _ = _tracker()
    points = [make_fix(0, 0, 0).coordinate, make_fix(30, 0, 0).coordinate]
    tracker.resume(points)
    assert tracker.snapshot().total_distance == pytest.approx(30.0, rel=1e-3)


def test_observers_see_every_accepted_fix() -> None:
    tracker, _ = _tracker()
    seen: List[int] = []
    unsubscribe = tracker.subscribe(lambda snap: seen.append(snap.point_count))
    tracker.start_tracking(make_fix(0, 0, 0))
    tracker.on_fix(make_fix(20, 0, 20))
    tracker.on_fix(make_fix(20, 0, 25))  # duplicate, no notification
    unsubscribe()
    tracker.on_fix(make_fix(40, 0, 40))
    assert seen == [1, 2]


def test_authorization_changes_are_published() -> None:
    tracker, _ = _tracker()
    tracker.on_authorization_changed(AuthorizationStatus.DENIED)
    assert tracker.snapshot().authorization is AuthorizationStatus.DENIED


def test_complete_upload_requires_validated_state() -> None:
    tracker, _ = _tracker()
    with pytest.raises(TrackerStateError):
        tracker.complete_upload()
