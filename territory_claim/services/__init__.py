"""Claim storage, server-side upload handling and the client session."""

from .claim_service import ClaimServiceConfig, ClaimUploadService
from .claim_session import ClaimSession, ClaimSessionConfig, build_upload_request
from .repository import TerritoryRepository

__all__ = [
    "ClaimServiceConfig",
    "ClaimSession",
    "ClaimSessionConfig",
    "ClaimUploadService",
    "TerritoryRepository",
    "build_upload_request",
]
