"""Thread-safe territory store with optional JSON file backing."""

from __future__ import annotations

import json
import logging
import math
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..collision.overlap import find_overlap
from ..errors import TerritoryNotFoundError, TerritoryOverlapError
from ..models import Territory


def owner_key(owner_id: Optional[str]) -> str:
    return (owner_id or "").strip().lower()


class TerritoryRepository:
    """Authoritative set of stored territories and per-owner walked distance.

    Every mutation takes the repository lock, so check-then-insert sequences
    such as :meth:`insert_if_clear` are atomic with respect to each other.
    When ``path`` is given the full state is rewritten after each mutation.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.path = Path(path) if path else None
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._lock = threading.RLock()
        self._territories: Dict[str, Territory] = {}
        self._distance_walked: Dict[str, float] = {}
        if self.path is not None:
            self._load(self.path)

    def insert_if_clear(
        self, territory: Territory, *, reject_overlaps: bool = True
    ) -> Territory:
        """Insert ``territory`` unless it duplicates or overlaps stored data.

        A repeated ``attempt_id`` from the same owner returns the territory
        stored by the first attempt instead of inserting again.

        Raises:
            TerritoryOverlapError: When ``reject_overlaps`` is set and the ring
                shares area with an active territory.
        """

        with self._lock:
            if territory.attempt_id:
                existing = self.find_by_attempt(
                    territory.owner_id, territory.attempt_id
                )
                if existing is not None:
                    self._log.info(
                        "Attempt %s already stored as %s",
                        territory.attempt_id,
                        existing.id,
                    )
                    return existing
            if reject_overlaps:
                clash = find_overlap(territory.ring, self._territories.values())
                if clash is not None:
                    raise TerritoryOverlapError(
                        f"Territory overlaps existing territory {clash.id}"
                    )
            if territory.id in self._territories:
                raise ValueError(f"Duplicate territory id {territory.id}")
            self._territories[territory.id] = territory
            self._save()
        self._log.info(
            "Stored territory %s for owner=%s area=%.0f m²",
            territory.id,
            territory.owner_id,
            territory.area,
        )
        return territory

    def get(self, territory_id: str) -> Optional[Territory]:
        with self._lock:
            return self._territories.get(territory_id)

    def list_active(self) -> List[Territory]:
        with self._lock:
            return [t for t in self._territories.values() if t.is_active]

    def find_by_attempt(self, owner_id: str, attempt_id: str) -> Optional[Territory]:
        key = owner_key(owner_id)
        with self._lock:
            for territory in self._territories.values():
                if (
                    territory.attempt_id == attempt_id
                    and owner_key(territory.owner_id) == key
                ):
                    return territory
        return None

    def deactivate(self, territory_id: str) -> Territory:
        with self._lock:
            territory = self._territories.get(territory_id)
            if territory is None:
                raise TerritoryNotFoundError(f"Unknown territory {territory_id}")
            if territory.is_active:
                territory = replace(territory, is_active=False)
                self._territories[territory_id] = territory
                self._save()
                self._log.info("Deactivated territory %s", territory_id)
            return territory

    def increment_distance(self, owner_id: str, delta_m: float) -> float:
        """Add ``delta_m`` to the owner's walked total and return the new total."""

        if not math.isfinite(delta_m) or delta_m < 0:
            raise ValueError("Distance delta must be a finite, non-negative number")
        key = owner_key(owner_id)
        with self._lock:
            total = self._distance_walked.get(key, 0.0) + delta_m
            self._distance_walked[key] = total
            self._save()
            return total

    def distance_walked(self, owner_id: str) -> float:
        with self._lock:
            return self._distance_walked.get(owner_key(owner_id), 0.0)

    # ------------------------------------------------------------------
    # File backing
    # ------------------------------------------------------------------
    def _load(self, path: Path) -> None:
        if not path.exists():
            return
        with path.open("r", encoding="utf-8") as handle:
            payload: Dict[str, Any] = json.load(handle)
        for item in payload.get("territories") or []:
            territory = Territory.from_payload(item)
            self._territories[territory.id] = territory
        for owner, total in (payload.get("distance_walked") or {}).items():
            self._distance_walked[owner_key(owner)] = float(total)
        self._log.info("Loaded %d territories from %s", len(self._territories), path)

    def _save(self) -> None:
        if self.path is None:
            return
        payload = {
            "territories": [t.to_payload() for t in self._territories.values()],
            "distance_walked": dict(self._distance_walked),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        with temp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=True, indent=2)
        temp_path.replace(self.path)


__all__ = ["TerritoryRepository", "owner_key"]
