"""Pooled ``requests`` session used by :class:`ClaimUploadClient`.

Only the territory listing (GET) is retried by the transport. Uploads and
distance increments are POSTs whose safety on retry depends on the attempt
id, so the caller decides when to resend them.
"""

from __future__ import annotations

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    CLAIM_READ_RETRIES,
    CLAIM_USER_AGENT,
    HTTP_POOL_CONNECTIONS,
    HTTP_POOL_MAXSIZE,
)

__all__ = ["create_default_session"]

# 429 is included so a throttled listing backs off per Retry-After.
_RETRY_STATUSES = (429, 500, 502, 503, 504)


def _read_retry(total: int) -> Retry:
    return Retry(
        total=max(0, total),
        backoff_factor=0.5,
        status_forcelist=_RETRY_STATUSES,
        allowed_methods=frozenset({"GET"}),
        respect_retry_after_header=True,
        raise_on_status=False,
    )


def create_default_session(
    token: str | None = None, *, read_retries: int = CLAIM_READ_RETRIES
) -> Session:
    """Build a session for the claim RPC endpoints.

    Args:
        token: Bearer token identifying the player; omitted for anonymous
            sessions, which the server rejects on every endpoint.
        read_retries: Transport retries applied to GET requests only.
    """

    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_read_retry(read_retries),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "Accept": "application/json",
            "User-Agent": CLAIM_USER_AGENT,
        }
    )
    if token:
        session.headers["Authorization"] = f"Bearer {token}"
    return session
