"""Flask RPC surface for the claim upload service."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from flask import Flask, jsonify, request
from flask.typing import ResponseReturnValue

from .config import CLAIM_API_TOKENS
from .errors import (
    AuthenticationError,
    ClaimUploadError,
    OwnershipError,
    PolygonParseError,
    TerritoryNotFoundError,
    TerritoryOverlapError,
    UnrepairablePolygonError,
)
from .models import ClaimUploadRequest
from .services import ClaimUploadService

TokenResolver = Callable[[Optional[str]], Optional[str]]

_STATUS_BY_ERROR = (
    (PolygonParseError, 400),
    (AuthenticationError, 401),
    (OwnershipError, 403),
    (TerritoryNotFoundError, 404),
    (TerritoryOverlapError, 409),
    (UnrepairablePolygonError, 422),
)


def static_token_resolver(tokens: Mapping[str, str]) -> TokenResolver:
    """Resolve bearer tokens through a fixed ``token -> user id`` table."""

    table = dict(tokens)

    def _resolve(token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        return table.get(token)

    return _resolve


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _status_for(exc: ClaimUploadError) -> int:
    for error_cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status
    return 500


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise PolygonParseError("Request body must be a JSON object")
    return payload


def create_app(
    service: ClaimUploadService,
    token_resolver: TokenResolver | None = None,
) -> Flask:
    """Build the Flask app exposing ``service`` over HTTP."""

    resolver = token_resolver or static_token_resolver(CLAIM_API_TOKENS)
    app = Flask(__name__)
    log = logging.getLogger(__name__)

    def _caller() -> Optional[str]:
        return resolver(_bearer_token())

    @app.errorhandler(ClaimUploadError)
    def _claim_error(exc: ClaimUploadError) -> ResponseReturnValue:
        status = _status_for(exc)
        log.info("%s %s -> %d %s", request.method, request.path, status, exc.code)
        return jsonify({"message": str(exc), "code": exc.code}), status

    @app.errorhandler(ValueError)
    def _bad_request(exc: ValueError) -> ResponseReturnValue:
        log.info("%s %s -> 400 %s", request.method, request.path, exc)
        return jsonify({"message": str(exc), "code": "invalid_request"}), 400

    @app.post("/rpc/upload_territory")
    def upload_territory() -> ResponseReturnValue:
        payload = _json_body()
        upload = ClaimUploadRequest.from_payload(payload)
        territory = service.upload(_caller(), upload)
        return jsonify({"id": territory.id, "territory": territory.to_payload()}), 201

    @app.post("/rpc/increment_distance_walked")
    def increment_distance_walked() -> ResponseReturnValue:
        payload = _json_body()
        total = service.increment_distance_walked(
            _caller(),
            str(payload.get("owner_id") or ""),
            float(payload.get("delta_m", 0.0)),
        )
        return jsonify({"total_m": total})

    @app.get("/territories")
    def list_territories() -> ResponseReturnValue:
        if _caller() is None:
            raise AuthenticationError("Caller is not authenticated")
        territories = service.list_active_territories()
        return jsonify({"territories": [t.to_payload() for t in territories]})

    @app.post("/territories/<territory_id>/deactivate")
    def deactivate(territory_id: str) -> ResponseReturnValue:
        territory = service.deactivate(_caller(), territory_id)
        return jsonify({"id": territory.id, "is_active": territory.is_active})

    return app


__all__ = ["create_app", "static_token_resolver"]
