"""Client-credentials token exchange against the configured identity endpoint."""
from __future__ import annotations

import logging
from typing import Dict, Optional

import requests

from .errors import ConfigurationError, TransportError
from .settings import SyncSettings

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("client_id", "client_secret", "auth_scope", "grant_type")


def _token_request_data(settings: SyncSettings) -> Dict[str, str]:
    missing = [name for name in REQUIRED_FIELDS if not getattr(settings, name)]
    if missing:
        raise ConfigurationError(f"Credential settings missing: {', '.join(missing)}")
    return {
        "client_id": settings.client_id,
        "scope": settings.auth_scope,
        "client_secret": settings.client_secret,
        "grant_type": settings.grant_type,
    }


def get_access_token(settings: SyncSettings, *, http: Optional[requests.Session] = None) -> str:
    """Exchange the configured client credentials for a bearer token."""

    endpoint = settings.resolved_token_endpoint()
    data = _token_request_data(settings)
    session = http or requests.Session()
    try:
        response = session.post(endpoint, data=data, timeout=settings.request_timeout)
    except requests.RequestException as exc:
        raise TransportError(f"Token request failed: {exc}") from exc

    if response.status_code != 200:
        raise TransportError(
            f"Token endpoint returned HTTP {response.status_code}",
            status_code=response.status_code,
        )
    try:
        payload = response.json()
    except ValueError as exc:
        raise TransportError("Token endpoint returned a non-JSON body") from exc

    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not token:
        raise TransportError("Token endpoint response did not contain an access_token")
    logger.debug("Access token acquired from %s", endpoint)
    return str(token)


__all__ = ["REQUIRED_FIELDS", "get_access_token"]
