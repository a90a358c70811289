"""Central configuration for the territory claim engine.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Secrets and deployment specifics are read from
environment variables (optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Geodesy
# ---------------------------------------------------------------------------
# Mean Earth radius (metres) used for great-circle distances and the local
# equirectangular projection.
EARTH_RADIUS_M = 6371000.0


# ---------------------------------------------------------------------------
# Path tracking
# ---------------------------------------------------------------------------
# Fixes reporting a horizontal accuracy worse than this (metres) are dropped.
TRACKER_MAX_ACCURACY_M = _env_float("TRACKER_MAX_ACCURACY_M", 50.0)

# Minimum spacing (metres) between consecutive vertices. 0 keeps every fix
# except exact duplicates.
TRACKER_MIN_POINT_SPACING_M = _env_float("TRACKER_MIN_POINT_SPACING_M", 0.0)

# Loop closure: vertex count required before closure is considered, and the
# distance (metres) from the first vertex that counts as "back at the start".
TRACKER_MINIMUM_VERTICES = _env_int("TRACKER_MINIMUM_VERTICES", 3)
TRACKER_CLOSURE_RADIUS_M = _env_float("TRACKER_CLOSURE_RADIUS_M", 10.0)

# Distance (metres) that must be walked before a return to the start counts as
# closure. Dense fixes near the first vertex would otherwise close the loop on
# the way out.
TRACKER_MIN_CLOSURE_DISTANCE_M = _env_float("TRACKER_MIN_CLOSURE_DISTANCE_M", 50.0)

# Walking-speed ceiling (km/h). Faster movement raises a transient warning but
# the fix is still recorded.
TRACKER_SPEED_WARNING_KMH = _env_float("TRACKER_SPEED_WARNING_KMH", 15.0)

# Seconds before a speed warning clears itself.
TRACKER_SPEED_WARNING_TTL_S = _env_float("TRACKER_SPEED_WARNING_TTL_S", 3.0)

# File used to persist an interrupted walk between app launches.
WALK_STORE_PATH = os.getenv("WALK_STORE_PATH", "unfinished_walk.json")


# ---------------------------------------------------------------------------
# Geometry validation
# ---------------------------------------------------------------------------
# Smallest claimable area (square metres). Areas at or below
# VALIDATION_ZERO_AREA_M2 are treated as degenerate.
VALIDATION_MIN_AREA_M2 = _env_float("VALIDATION_MIN_AREA_M2", 100.0)
VALIDATION_ZERO_AREA_M2 = 1e-3

# Minimum walked distance (metres) before a closed loop is accepted. Set to 0
# to disable.
VALIDATION_MIN_WALK_DISTANCE_M = _env_float("VALIDATION_MIN_WALK_DISTANCE_M", 50.0)


# ---------------------------------------------------------------------------
# Collision detection
# ---------------------------------------------------------------------------
# Distance bands (metres from the nearest foreign boundary).
COLLISION_DANGER_M = 25.0
COLLISION_WARNING_M = 50.0
COLLISION_CAUTION_M = 100.0

# Seconds between comprehensive path checks while tracking.
COLLISION_CHECK_INTERVAL_S = _env_float("COLLISION_CHECK_INTERVAL_S", 10.0)

# Caller policy on violations: refuse to start a claim inside foreign land,
# but keep walking when the path strays into it.
BLOCK_START_ON_VIOLATION = _env_bool("BLOCK_START_ON_VIOLATION", True)
STOP_ON_MIDWALK_VIOLATION = _env_bool("STOP_ON_MIDWALK_VIOLATION", False)


# ---------------------------------------------------------------------------
# Claim upload service (server)
# ---------------------------------------------------------------------------
# Reject inserts overlapping an existing active territory. The check runs
# under the repository lock together with the insert.
CLAIM_REJECT_OVERLAPS = _env_bool("CLAIM_REJECT_OVERLAPS", True)

# Optional JSON file backing the territory repository. Empty keeps data in
# memory only.
TERRITORY_STORE_PATH = os.getenv("TERRITORY_STORE_PATH", "")

# Static bearer tokens accepted by the RPC server: "token:user,token2:user2".
CLAIM_API_TOKENS = {
    token.strip(): user.strip()
    for token, _, user in (
        item.partition(":")
        for item in os.getenv("CLAIM_API_TOKENS", "").split(",")
        if item.strip()
    )
    if token.strip() and user.strip()
}

SERVER_HOST = os.getenv("SERVER_HOST", "127.0.0.1")
SERVER_PORT = _env_int("SERVER_PORT", 5000)


# ---------------------------------------------------------------------------
# Claim upload client
# ---------------------------------------------------------------------------
CLAIM_API_BASE_URL = os.getenv("CLAIM_API_BASE_URL", "http://127.0.0.1:5000")
CLAIM_API_TOKEN = os.getenv("CLAIM_API_TOKEN", "")

# HTTP session pool sizes.
HTTP_POOL_CONNECTIONS = 4
HTTP_POOL_MAXSIZE = 4

# Request timeout in seconds.
REQUEST_TIMEOUT = 15

# Transport retries for idempotent reads (territory listing). Writes rely on
# the attempt id instead.
CLAIM_READ_RETRIES = _env_int("CLAIM_READ_RETRIES", 3)
CLAIM_USER_AGENT = os.getenv("CLAIM_USER_AGENT", "territory-claim-client")

# Seconds the client keeps the fetched territory list before refetching.
TERRITORY_CACHE_TTL_S = _env_int("TERRITORY_CACHE_TTL_S", 30)
