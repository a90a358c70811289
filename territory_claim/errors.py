"""Central error types used across the application."""

from __future__ import annotations

from enum import Enum


class TerritoryClaimError(RuntimeError):
    """Base error for the territory claim engine."""


class TrackerStateError(TerritoryClaimError):
    """Raised when a tracker command is not valid in the current state."""


class ClaimStartBlockedError(TerritoryClaimError):
    """Raised when the caller policy refuses to start a new claim."""


class GeometryErrorKind(str, Enum):
    TOO_FEW_POINTS = "too_few_points"
    WALK_TOO_SHORT = "walk_too_short"
    ZERO_AREA = "zero_area"
    AREA_TOO_SMALL = "area_too_small"
    UNREPAIRABLE = "unrepairable"


class GeometryError(TerritoryClaimError):
    """Raised when a closed path cannot become a claimable polygon."""

    def __init__(self, kind: GeometryErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ClaimUploadError(TerritoryClaimError):
    """Base error for claim upload failures (server or transport)."""

    code = "upload_failed"


class AuthenticationError(ClaimUploadError):
    """Raised when the caller identity cannot be established."""

    code = "not_authenticated"


class OwnershipError(ClaimUploadError):
    """Raised when the declared owner differs from the authenticated caller."""

    code = "owner_mismatch"


class PolygonParseError(ClaimUploadError):
    """Raised when the submitted polygon is syntactically invalid."""

    code = "parse_error"


class UnrepairablePolygonError(ClaimUploadError):
    """Raised when repair leaves an empty or degenerate polygon."""

    code = "unrepairable_polygon"


class TerritoryOverlapError(ClaimUploadError):
    """Raised when a new territory overlaps an existing active territory."""

    code = "territory_overlap"


class TerritoryNotFoundError(ClaimUploadError):
    """Raised when a territory id does not exist."""

    code = "not_found"


class ClaimNetworkError(ClaimUploadError):
    """Raised when the upload service cannot be reached."""

    code = "network_error"


class UploadInProgressError(ClaimUploadError):
    """Raised when a second upload is attempted while one is in flight."""

    code = "upload_in_progress"


__all__ = [
    "TerritoryClaimError",
    "TrackerStateError",
    "ClaimStartBlockedError",
    "GeometryErrorKind",
    "GeometryError",
    "ClaimUploadError",
    "AuthenticationError",
    "OwnershipError",
    "PolygonParseError",
    "UnrepairablePolygonError",
    "TerritoryOverlapError",
    "TerritoryNotFoundError",
    "ClaimNetworkError",
    "UploadInProgressError",
]
