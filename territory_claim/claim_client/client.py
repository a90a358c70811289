"""requests-based client for the claim upload RPC."""

from __future__ import annotations

import logging
from threading import RLock
from typing import Any, Dict, List, Optional

import requests
from cachetools import TTLCache

from ..config import (
    CLAIM_API_BASE_URL,
    CLAIM_API_TOKEN,
    REQUEST_TIMEOUT,
    TERRITORY_CACHE_TTL_S,
)
from ..errors import ClaimNetworkError, ClaimUploadError
from ..models import ClaimUploadRequest, Territory
from .response_handling import classify_response_status
from .session import create_default_session

_TERRITORIES_KEY = "active"


class ClaimUploadClient:
    """Talk to the claim service over HTTP.

    Transport failures surface as :class:`ClaimNetworkError`; error
    responses become the matching :class:`ClaimUploadError` subclass. The
    active territory list is cached for ``cache_ttl_s`` seconds.
    """

    def __init__(
        self,
        base_url: str = CLAIM_API_BASE_URL,
        *,
        token: str | None = CLAIM_API_TOKEN,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        cache_ttl_s: float = TERRITORY_CACHE_TTL_S,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or create_default_session(token)
        if session is not None and token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._cache_lock = RLock()
        self._territory_cache: TTLCache[str, List[Territory]] = TTLCache(
            maxsize=1, ttl=max(cache_ttl_s, 0.001)
        )
        self._cache_enabled = cache_ttl_s > 0

    def upload_territory(self, request: ClaimUploadRequest) -> str:
        """Upload one claim and return the stored territory id."""

        data = self._call(
            "POST",
            "/rpc/upload_territory",
            "Territory upload",
            json=request.to_payload(),
        )
        territory_id = data.get("id") if isinstance(data, dict) else None
        if not territory_id:
            raise ClaimUploadError("Territory upload returned no id")
        self.invalidate()
        self._log.info("Uploaded territory %s", territory_id)
        return str(territory_id)

    def increment_distance_walked(self, owner_id: str, delta_m: float) -> float:
        data = self._call(
            "POST",
            "/rpc/increment_distance_walked",
            "Distance update",
            json={"owner_id": owner_id, "delta_m": float(delta_m)},
        )
        return float(data.get("total_m", 0.0)) if isinstance(data, dict) else 0.0

    def fetch_territories(self, *, refresh: bool = False) -> List[Territory]:
        if self._cache_enabled and not refresh:
            with self._cache_lock:
                cached = self._territory_cache.get(_TERRITORIES_KEY)
            if cached is not None:
                return list(cached)
        data = self._call("GET", "/territories", "Territory listing")
        items = data.get("territories", []) if isinstance(data, dict) else []
        territories = [Territory.from_payload(item) for item in items]
        if self._cache_enabled:
            with self._cache_lock:
                self._territory_cache[_TERRITORIES_KEY] = territories
        self._log.debug("Fetched %d territories", len(territories))
        return list(territories)

    def deactivate(self, territory_id: str) -> None:
        self._call(
            "POST", f"/territories/{territory_id}/deactivate", "Territory deactivation"
        )
        self.invalidate()

    def invalidate(self) -> None:
        with self._cache_lock:
            self._territory_cache.clear()

    def _call(
        self, method: str, path: str, context: str, **kwargs: Any
    ) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method, url, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            self._log.warning("%s could not reach %s: %s", context, url, exc)
            raise ClaimNetworkError(f"{context} failed: {exc}") from exc
        error = classify_response_status(response, context)
        if error is not None:
            raise error
        try:
            return response.json()
        except ValueError as exc:
            raise ClaimUploadError(f"{context} returned invalid JSON") from exc


__all__ = ["ClaimUploadClient"]
