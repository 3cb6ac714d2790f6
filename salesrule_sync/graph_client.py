"""Authenticated REST helpers for the Graph workbook API.

This module centralises every HTTP interaction performed by the engine. It
offers a deliberately small surface: :class:`GraphClient` sends requests with
the bearer credential attached and translates responses into either a
:class:`GraphResponse` or one of the engine's error types:

* a response whose error message mentions ``locked`` (or a ``423`` status)
  becomes :class:`~salesrule_sync.errors.ConflictError`;
* every other non-2xx status, and any network failure, becomes
  :class:`~salesrule_sync.errors.TransportError`.

Higher level modules (identity, schema, table writer) build URLs and interpret
payloads; this layer only speaks HTTP.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional

import requests

from .errors import ConfigurationError, ConflictError, TransportError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
LOCKED_STATUS = 423
LOCK_MARKER = "locked"


@dataclass(slots=True)
class GraphResponse:
    """Decoded response returned by :class:`GraphClient`."""

    status_code: int
    payload: Any = None
    content: bytes = field(default=b"", repr=False)

    def value_list(self) -> List[Any]:
        """Return the ``value`` collection of a list response."""

        if isinstance(self.payload, Mapping):
            values = self.payload.get("value")
            if isinstance(values, list):
                return values
        return []

    def get(self, key: str, default: Any = None) -> Any:
        if isinstance(self.payload, Mapping):
            return self.payload.get(key, default)
        return default


def _decode(response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def error_message(payload: Any) -> str:
    """Extract ``error.message`` from a Graph error payload."""

    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping):
            message = error.get("message")
            if message:
                return str(message)
        elif isinstance(error, str):
            return error
    return ""


def is_lock_conflict(status_code: Optional[int], payload: Any) -> bool:
    """Return ``True`` when the response signals that the resource is locked."""

    if status_code == LOCKED_STATUS:
        return True
    return LOCK_MARKER in error_message(payload).lower()


class GraphClient:
    """Concrete helper that speaks to the workbook REST API."""

    def __init__(
        self,
        access_token: str,
        *,
        http: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        if not access_token:
            raise ConfigurationError("Access token is not set. Obtain a token before calling the API.")
        self._access_token = access_token
        self._http = http or requests.Session()
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get(self, url: str, *, params: Optional[Mapping[str, str]] = None) -> GraphResponse:
        return self._request("GET", url, params=params)

    def post(self, url: str, body: Mapping[str, Any], *, expected: Collection[int] = (201,)) -> GraphResponse:
        return self._request("POST", url, json_body=body, expected=expected)

    def patch(self, url: str, body: Mapping[str, Any], *, expected: Collection[int] = (200,)) -> GraphResponse:
        return self._request("PATCH", url, json_body=body, expected=expected)

    def delete(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        expected: Collection[int] = (200, 204),
    ) -> GraphResponse:
        return self._request("DELETE", url, headers=headers, expected=expected)

    def put(
        self,
        url: str,
        data: bytes,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> GraphResponse:
        return self._request("PUT", url, data=data, headers=headers)

    def download(self, url: str) -> bytes:
        """Fetch a pre-signed download URL; no credential is attached."""

        response = self._request("GET", url, authorise=False)
        return response.content

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _headers(self, extra: Optional[Mapping[str, str]], *, authorise: bool, has_body: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if authorise:
            headers["Authorization"] = f"Bearer {self._access_token}"
        if has_body:
            headers["Content-Type"] = JSON_CONTENT_TYPE
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json_body: Optional[Mapping[str, Any]] = None,
        data: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        authorise: bool = True,
        expected: Optional[Collection[int]] = None,
    ) -> GraphResponse:
        request_headers = self._headers(headers, authorise=authorise, has_body=json_body is not None)
        logger.debug("%s %s", method, url)
        try:
            response = self._http.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=request_headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        payload = _decode(response)
        status = response.status_code
        if not 200 <= status < 300:
            message = error_message(payload) or getattr(response, "reason", "") or "request failed"
            if is_lock_conflict(status, payload):
                raise ConflictError(
                    f"{method} {url} rejected, resource is locked: {message}",
                    status_code=status,
                    payload=payload,
                )
            raise TransportError(
                f"{method} {url} returned HTTP {status}: {message}",
                status_code=status,
                payload=payload,
            )
        if expected is not None and status not in expected:
            raise TransportError(
                f"{method} {url} returned HTTP {status}, expected {sorted(expected)}",
                status_code=status,
                payload=payload,
            )
        return GraphResponse(status_code=status, payload=payload, content=response.content or b"")


__all__ = [
    "GraphClient",
    "GraphResponse",
    "JSON_CONTENT_TYPE",
    "XLSX_CONTENT_TYPE",
    "error_message",
    "is_lock_conflict",
]
