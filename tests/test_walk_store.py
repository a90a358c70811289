from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from territory_claim.tracking import WalkStore


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    store = WalkStore(tmp_path / "nested" / "walk.json")
    started = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
    store.save([(51.5, -0.12), (51.501, -0.12)], 111.2, started)

    walk = store.load()

    assert walk is not None
    assert walk.path == ((51.5, -0.12), (51.501, -0.12))
    assert walk.total_distance == pytest.approx(111.2)
    assert walk.started_at == started
    assert walk.saved_at is not None
    assert not (tmp_path / "nested" / "walk.tmp").exists()


def test_clear_is_idempotent(tmp_path: Path) -> None:
    store = WalkStore(tmp_path / "walk.json")
    store.clear()
    store.save([(1.0, 2.0)], 0.0)
    store.clear()
    assert store.load() is None


def test_malformed_file_is_ignored(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = tmp_path / "walk.json"
    path.write_text("{not json", encoding="utf-8")
    store = WalkStore(path)

    with caplog.at_level(logging.WARNING):
        assert store.load() is None
    assert "Failed to read saved walk" in caplog.text


def test_empty_path_is_not_a_saved_walk(tmp_path: Path) -> None:
    store = WalkStore(tmp_path / "walk.json")
    store.save([], 0.0)
    assert store.load() is None
