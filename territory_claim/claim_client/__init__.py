"""HTTP client for the claim upload service."""

from .client import ClaimUploadClient
from .response_handling import classify_response_status
from .session import create_default_session

__all__ = ["ClaimUploadClient", "classify_response_status", "create_default_session"]
