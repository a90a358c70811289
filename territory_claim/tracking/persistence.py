"""JSON file store for an interrupted walk."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from ..models import (
    LatLon,
    SavedWalk,
    coordinates_from_payload,
    coordinates_to_payload,
    parse_timestamp,
)

_LOGGER = logging.getLogger(__name__)


class WalkStore:
    """Persist the in-progress path so a killed process can offer to resume.

    The file is rewritten on every accepted fix; writes go to a temporary
    sibling first and are swapped in with ``Path.replace`` so a crash never
    leaves a half-written walk behind.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def save(
        self,
        path: Sequence[LatLon],
        total_distance: float,
        started_at: Optional[datetime] = None,
    ) -> None:
        payload = {
            "path": coordinates_to_payload(path),
            "total_distance": float(total_distance),
            "started_at": started_at.isoformat() if started_at else None,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }
        self._write_file(payload)

    def load(self) -> Optional[SavedWalk]:
        """Return the saved walk, or None when absent or unreadable."""

        payload = self._read_file()
        if payload is None:
            return None
        try:
            points = coordinates_from_payload(payload.get("path") or [])
            walk = SavedWalk(
                path=points,
                total_distance=float(payload.get("total_distance") or 0.0),
                started_at=parse_timestamp(payload.get("started_at")),
                saved_at=parse_timestamp(payload.get("saved_at")),
            )
        except (TypeError, ValueError) as exc:
            _LOGGER.warning("Ignoring malformed saved walk %s: %s", self.path, exc)
            return None
        if not walk.path:
            return None
        return walk

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        _LOGGER.debug("Cleared saved walk %s", self.path)

    def _write_file(self, payload: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        with temp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=True)
        temp_path.replace(self.path)

    def _read_file(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            _LOGGER.warning("Failed to read saved walk %s: %s", self.path, exc)
            return None
        return payload if isinstance(payload, dict) else None


__all__ = ["WalkStore"]
