"""End-to-end tests for ClaimSession against an in-process claim service."""

from __future__ import annotations

import threading
from typing import List, Optional

import pytest

from territory_claim.errors import (
    ClaimStartBlockedError,
    TerritoryOverlapError,
    TrackerStateError,
    UploadInProgressError,
)
from territory_claim.models import (
    AuthorizationStatus,
    ClaimUploadRequest,
    Territory,
    WarningLevel,
)
from territory_claim.services import (
    ClaimSession,
    ClaimSessionConfig,
    ClaimUploadService,
    TerritoryRepository,
)
from territory_claim.tracking import FixOutcome, TrackerState

from conftest import make_fix, square_walk


class InProcessBackend:
    """Backend calling the service directly as an authenticated user."""

    def __init__(self, service: ClaimUploadService, caller: str) -> None:
        self.service = service
        self.caller = caller
        self.requests: List[ClaimUploadRequest] = []
        self.gate: Optional[threading.Event] = None
        self.fail_with: Optional[Exception] = None

    def upload_territory(self, request: ClaimUploadRequest) -> str:
        self.requests.append(request)
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.fail_with is not None:
            raise self.fail_with
        return self.service.upload(self.caller, request).id

    def increment_distance_walked(self, owner_id: str, delta_m: float) -> float:
        return self.service.increment_distance_walked(self.caller, owner_id, delta_m)

    def fetch_territories(self, *, refresh: bool = False) -> List[Territory]:
        return self.service.list_active_territories()


def _session(
    claim_service: ClaimUploadService, **config_kwargs
) -> tuple[ClaimSession, InProcessBackend]:
    backend = InProcessBackend(claim_service, "alice")
    config = ClaimSessionConfig(check_interval_s=60.0, **config_kwargs)
    return ClaimSession("alice", backend, config=config), backend


def _walk_to_validated(session: ClaimSession, size_m: float = 50.0) -> None:
    fixes = square_walk(size_m)
    session.start(fixes[0])
    for fix in fixes[1:]:
        session.on_fix(fix)


def test_walk_upload_and_distance_credit(
    claim_service: ClaimUploadService, repository: TerritoryRepository
) -> None:
    session, backend = _session(claim_service)
    with session:
        _walk_to_validated(session)
        assert session.snapshot().state is TrackerState.VALIDATED
        assert not session.monitor.running

        territory_id = session.submit_upload().result(timeout=5.0)

        assert session.snapshot().state is TrackerState.IDLE
        assert session.upload_error is None
        assert [t.id for t in session.detector.territories] == [territory_id]
    stored = repository.get(territory_id)
    assert stored is not None
    assert stored.area == pytest.approx(2_500.0, rel=0.01)
    assert backend.requests[0].attempt_id
    assert repository.distance_walked("alice") == pytest.approx(200.0, rel=1e-3)


def test_start_blocked_inside_foreign_territory(
    claim_service: ClaimUploadService, foreign_square: Territory
) -> None:
    session, _ = _session(claim_service)
    with session:
        session.detector.update_territories([foreign_square])
        with pytest.raises(ClaimStartBlockedError):
            session.start(make_fix(50, 50, 0))
        assert session.snapshot().state is TrackerState.IDLE


def test_start_allowed_inside_when_policy_disabled(
    claim_service: ClaimUploadService, foreign_square: Territory
) -> None:
    session, _ = _session(claim_service, block_start_on_violation=False)
    with session:
        session.detector.update_territories([foreign_square])
        session.start(make_fix(50, 50, 0))
        assert session.snapshot().state is TrackerState.TRACKING
        session.stop()


def test_start_blocked_without_location_permission(
    claim_service: ClaimUploadService,
) -> None:
    session, _ = _session(claim_service)
    with session:
        session.on_authorization_changed(AuthorizationStatus.DENIED)
        with pytest.raises(ClaimStartBlockedError):
            session.start()


def test_midwalk_violation_only_warns_by_default(
    claim_service: ClaimUploadService, foreign_square: Territory
) -> None:
    session, _ = _session(claim_service)
    warnings: List[WarningLevel] = []
    session.on_collision(lambda result: warnings.append(result.warning_level))
    with session:
        session.detector.update_territories([foreign_square])
        session.start(make_fix(50, 300, 0))
        session.on_fix(make_fix(50, 150, 60))
        session.on_fix(make_fix(50, 50, 120))

        result = session.monitor.check_now()

        assert result.warning_level is WarningLevel.VIOLATION
        assert session.latest_collision == result
        assert session.snapshot().state is TrackerState.TRACKING
        assert warnings == [WarningLevel.VIOLATION]
        session.stop()


def test_midwalk_violation_stops_when_configured(
    claim_service: ClaimUploadService, foreign_square: Territory
) -> None:
    session, _ = _session(claim_service, stop_on_midwalk_violation=True)
    with session:
        session.detector.update_territories([foreign_square])
        session.start(make_fix(50, 300, 0))
        session.on_fix(make_fix(50, 50, 120))
        session.monitor.check_now()
        assert session.snapshot().state is TrackerState.IDLE


def test_second_upload_while_in_flight_is_rejected(
    claim_service: ClaimUploadService,
) -> None:
    session, backend = _session(claim_service)
    backend.gate = threading.Event()
    with session:
        _walk_to_validated(session)
        future = session.submit_upload()
        with pytest.raises(UploadInProgressError):
            session.submit_upload()
        backend.gate.set()
        assert future.result(timeout=5.0)
        assert not session.upload_in_flight


def test_failed_upload_keeps_polygon_and_reuses_attempt_id(
    claim_service: ClaimUploadService,
) -> None:
    session, backend = _session(claim_service)
    backend.fail_with = TerritoryOverlapError("overlaps t-1")
    with session:
        _walk_to_validated(session)

        failed = session.submit_upload()
        assert isinstance(failed.exception(timeout=5.0), TerritoryOverlapError)
        assert isinstance(session.upload_error, TerritoryOverlapError)
        assert session.snapshot().state is TrackerState.VALIDATED

        backend.fail_with = None
        assert session.submit_upload().result(timeout=5.0)
        assert session.upload_error is None
    assert backend.requests[0].attempt_id == backend.requests[1].attempt_id


def test_upload_requires_validated_walk(claim_service: ClaimUploadService) -> None:
    session, _ = _session(claim_service)
    with session:
        with pytest.raises(TrackerStateError):
            session.submit_upload()


def test_abandoned_walk_credits_distance(
    claim_service: ClaimUploadService, repository: TerritoryRepository
) -> None:
    session, _ = _session(claim_service)
    with session:
        session.start(make_fix(0, 0, 0))
        assert session.on_fix(make_fix(60, 0, 40)) is FixOutcome.ACCEPTED
        session.on_fix(make_fix(120, 0, 80))
        assert session.stop() == pytest.approx(120.0, rel=1e-3)
    assert repository.list_active() == []
    assert repository.distance_walked("alice") == pytest.approx(120.0, rel=1e-3)


def test_refresh_territories_loads_detector(
    claim_service: ClaimUploadService, foreign_square: Territory
) -> None:
    claim_service.repository.insert_if_clear(foreign_square)
    session, _ = _session(claim_service)
    with session:
        assert session.refresh_territories() == 1
        assert session.detector.territories == (foreign_square,)


def test_upload_succeeds_when_walk_stopped_mid_upload(
    claim_service: ClaimUploadService, repository: TerritoryRepository
) -> None:
    session, backend = _session(claim_service)
    backend.gate = threading.Event()
    with session:
        _walk_to_validated(session)
        future = session.submit_upload()
        assert session.stop() == pytest.approx(200.0, rel=1e-3)
        backend.gate.set()

        territory_id = future.result(timeout=5.0)

        assert repository.get(territory_id) is not None
        assert [t.id for t in session.detector.territories] == [territory_id]
        assert session.snapshot().state is TrackerState.IDLE
        assert session.upload_error is None
        assert not session.upload_in_flight
    assert repository.distance_walked("alice") == pytest.approx(200.0, rel=1e-3)


def test_upload_finishing_after_restart_leaves_new_walk_alone(
    claim_service: ClaimUploadService,
) -> None:
    session, backend = _session(claim_service)
    backend.gate = threading.Event()
    with session:
        _walk_to_validated(session)
        future = session.submit_upload()
        session.stop()
        session.start(make_fix(500, 500, 1_000))
        backend.gate.set()

        assert future.result(timeout=5.0)
        snap = session.snapshot()
        assert snap.state is TrackerState.TRACKING
        assert snap.point_count == 1
        session.stop()
