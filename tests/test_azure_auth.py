from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from graph_fakes import FakeResponse, make_settings
from salesrule_sync.azure_auth import get_access_token
from salesrule_sync.errors import ConfigurationError, TransportError


class _TokenSession:
    def __init__(self, response: Any) -> None:
        self._response = response
        self.posts: List[Dict[str, Any]] = []

    def post(self, url: str, data=None, timeout=None):
        self.posts.append({"url": url, "data": data, "timeout": timeout})
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def test_token_exchange_posts_client_credentials() -> None:
    session = _TokenSession(FakeResponse(200, {"access_token": "abc"}))
    settings = make_settings()

    assert get_access_token(settings, http=session) == "abc"

    request = session.posts[0]
    assert request["url"] == "https://login.test/tenant-1/oauth2/v2.0/token"
    assert request["data"] == {
        "client_id": "client-1",
        "scope": "https://graph.microsoft.com/.default",
        "client_secret": "secret",
        "grant_type": "client_credentials",
    }


def test_missing_credentials_are_configuration_errors() -> None:
    session = _TokenSession(FakeResponse(200, {"access_token": "abc"}))
    with pytest.raises(ConfigurationError):
        get_access_token(make_settings(client_secret=""), http=session)
    with pytest.raises(ConfigurationError):
        get_access_token(make_settings(tenant_id=""), http=session)
    assert session.posts == []


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(401, {"error": "invalid_client"}),
        FakeResponse(200, {"token_type": "Bearer"}),
        FakeResponse(200, None, content=b"<html>"),
        requests.ConnectionError("offline"),
    ],
)
def test_failed_token_exchange_raises_transport_error(response: Any) -> None:
    with pytest.raises(TransportError):
        get_access_token(make_settings(), http=_TokenSession(response))
