#!/usr/bin/env python3
"""Replay a recorded walk through the tracker, validator and detector.

The fixes CSV needs ``latitude`` and ``longitude`` columns; ``accuracy``
(metres) and ``timestamp`` (epoch seconds or ISO-8601) are optional. Existing
territories may be supplied as a JSON list of territory payloads (or an object
with a ``territories`` key) to see the collision bands the walk would raise.

Usage examples:

    python -m territory_claim.tools.replay_walk --fixes walk.csv

    python -m territory_claim.tools.replay_walk \
        --fixes walk.csv \
        --territories territories.json \
        --owner-id player-1
"""

from __future__ import annotations

import argparse
import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from territory_claim.collision import CollisionDetector
from territory_claim.models import GeoFix, Territory, WarningLevel
from territory_claim.tracking import PathTracker, TrackerState

LOGGER = logging.getLogger("replay_walk")

DEFAULT_ACCURACY_M = 5.0


def load_fixes(path: Path | str) -> List[GeoFix]:
    """Read fixes from CSV; rows missing a coordinate are dropped."""

    frame = pd.read_csv(path)
    missing = {"latitude", "longitude"} - set(frame.columns)
    if missing:
        columns = ", ".join(sorted(missing))
        raise ValueError(f"Fixes CSV is missing columns: {columns}")
    frame = frame.dropna(subset=["latitude", "longitude"])
    if "accuracy" not in frame.columns:
        frame["accuracy"] = DEFAULT_ACCURACY_M
    frame["accuracy"] = frame["accuracy"].fillna(DEFAULT_ACCURACY_M)
    if "timestamp" in frame.columns:
        frame["timestamp"] = _timestamps_to_epoch(frame["timestamp"])
    else:
        frame["timestamp"] = range(len(frame))
    return [
        GeoFix(
            latitude=float(row.latitude),
            longitude=float(row.longitude),
            accuracy=float(row.accuracy),
            timestamp=float(row.timestamp),
        )
        for row in frame.itertuples(index=False)
    ]


def _timestamps_to_epoch(column: pd.Series) -> pd.Series:
    numeric = pd.to_numeric(column, errors="coerce")
    if numeric.notna().all():
        return numeric.astype(float)
    parsed = pd.to_datetime(column, utc=True)
    return (parsed - pd.Timestamp(0, tz="UTC")).dt.total_seconds()


def load_territories(path: Path | str) -> List[Territory]:
    with Path(path).open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    items = payload.get("territories", []) if isinstance(payload, dict) else payload
    return [Territory.from_payload(item) for item in items]


def replay_walk(
    fixes: Sequence[GeoFix],
    territories: Sequence[Territory] = (),
    *,
    owner_id: Optional[str] = None,
    tracker: PathTracker | None = None,
) -> Dict[str, Any]:
    """Feed ``fixes`` to a fresh tracker and summarise what happened."""

    tracker = tracker or PathTracker()
    detector = CollisionDetector(territories)
    outcomes: Counter[str] = Counter()
    worst = WarningLevel.SAFE

    fixes = list(fixes)
    if not fixes:
        raise ValueError("No fixes to replay")
    start = detector.check_point(fixes[0].coordinate, owner_id)
    tracker.start_tracking(fixes[0])
    for fix in fixes[1:]:
        outcome = tracker.on_fix(fix)
        outcomes[outcome.value] += 1
        if tracker.state is not TrackerState.TRACKING:
            break
        level = detector.check_point(fix.coordinate, owner_id).warning_level
        worst = max(worst, level)

    snapshot = tracker.snapshot()
    polygon = snapshot.validated_polygon
    path_result = detector.check_path_comprehensive(
        polygon.ring if polygon else snapshot.path, owner_id
    )
    worst = max(worst, path_result.warning_level)
    error = snapshot.validation_error
    return {
        "state": snapshot.state.value,
        "fixes": len(fixes),
        "outcomes": dict(outcomes),
        "vertices": snapshot.point_count,
        "total_distance_m": round(snapshot.total_distance, 2),
        "area_m2": round(snapshot.calculated_area, 2),
        "repaired": bool(polygon and polygon.repaired),
        "validation_error": error.kind.value if error else None,
        "start_level": start.warning_level.label,
        "worst_level": worst.label,
        "offending_territory_id": path_result.offending_territory_id,
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Replay a recorded walk and report the claim outcome."
    )
    parser.add_argument("--fixes", type=Path, required=True, help="CSV of GPS fixes")
    parser.add_argument(
        "--territories",
        type=Path,
        help="Optional JSON file of existing territories",
    )
    parser.add_argument(
        "--owner-id",
        help="Owner whose territories are excluded from collision checks",
    )
    parser.add_argument("--output", type=Path, help="Write the summary JSON here")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point used via ``python -m territory_claim.tools.replay_walk``."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    try:
        fixes = load_fixes(args.fixes)
        territories = load_territories(args.territories) if args.territories else []
    except (OSError, ValueError) as exc:
        LOGGER.error("Failed to load inputs: %s", exc)
        return 1

    try:
        summary = replay_walk(fixes, territories, owner_id=args.owner_id)
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 1

    text = json.dumps(summary, indent=2)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text + "\n", encoding="utf-8")
        LOGGER.info("Summary written to %s", args.output)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
