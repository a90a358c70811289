"""Map claim service HTTP responses onto typed upload errors."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type

import requests

from ..errors import (
    AuthenticationError,
    ClaimUploadError,
    OwnershipError,
    PolygonParseError,
    TerritoryNotFoundError,
    TerritoryOverlapError,
    UnrepairablePolygonError,
)

__all__ = ["classify_response_status", "extract_error", "ERROR_BY_CODE"]

_LOGGER = logging.getLogger(__name__)

ERROR_BY_CODE: Dict[str, Type[ClaimUploadError]] = {
    cls.code: cls
    for cls in (
        AuthenticationError,
        OwnershipError,
        PolygonParseError,
        UnrepairablePolygonError,
        TerritoryOverlapError,
        TerritoryNotFoundError,
    )
}

_ERROR_BY_STATUS: Dict[int, Type[ClaimUploadError]] = {
    400: PolygonParseError,
    401: AuthenticationError,
    403: OwnershipError,
    404: TerritoryNotFoundError,
    409: TerritoryOverlapError,
    422: UnrepairablePolygonError,
}


def classify_response_status(
    response: requests.Response, context: str
) -> Optional[ClaimUploadError]:
    """Return the error a non-success response stands for, or None on success.

    The ``code`` field of the JSON error body wins over the status code so
    that the server can refine the mapping without a client release.
    """

    status = response.status_code
    if status < 400:
        return None
    body = _safe_json(response)
    message, code = extract_error(response, body)
    detail = f"{context} failed (status {status})"
    if message:
        detail = f"{detail} | {message}"

    error_cls = ERROR_BY_CODE.get(code or "") or _ERROR_BY_STATUS.get(
        status, ClaimUploadError
    )
    if status >= 500:
        _LOGGER.error(detail)
    else:
        _LOGGER.warning(detail)
    return error_cls(detail)


def extract_error(
    response: requests.Response, body: Any = None
) -> tuple[Optional[str], Optional[str]]:
    """Return ``(message, code)`` from an error body, falling back to text."""

    data = body if body is not None else _safe_json(response)
    if isinstance(data, dict):
        message = data.get("message")
        code = data.get("code")
        return (str(message) if message else None, str(code) if code else None)
    text = getattr(response, "text", "")
    if not isinstance(text, str) or not text.strip():
        return None, None
    trimmed = text.strip()
    return ((trimmed[:297] + "...") if len(trimmed) > 300 else trimmed), None


def _safe_json(response: requests.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError as exc:
        _LOGGER.debug(
            "Failed to decode JSON from %s: %s", getattr(response, "url", "?"), exc
        )
        return None
