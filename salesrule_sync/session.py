"""Per-event session state: credential, table address and memoised schema."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional

import requests

from .errors import ConfigurationError
from .graph_client import GraphClient
from .logging_config import get_logger
from .settings import SyncSettings

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .identity import StoreTarget
    from .schema import HeaderMap


@dataclass
class SessionContext:
    """State owned by a single synchronisation call.

    A session is created when one event is handled and discarded afterwards.
    Values memoised on it are never invalidated while it stays bound to the
    same workbook; :meth:`bind_file` is the only way to retarget it.
    """

    settings: SyncSettings
    client: GraphClient
    logger: logging.Logger = field(default_factory=get_logger)
    site_id: Optional[str] = None
    file_path: Optional[str] = None
    store: Optional["StoreTarget"] = None
    worksheet_id: Optional[str] = None
    table_id: Optional[str] = None
    header_map: Optional["HeaderMap"] = None
    file_items: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def open(
        cls,
        settings: SyncSettings,
        access_token: str,
        *,
        http: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "SessionContext":
        client = GraphClient(access_token, http=http, timeout=settings.request_timeout)
        return cls(settings=settings, client=client, logger=logger or get_logger())

    def bind_file(self, file_path: str, store: Optional["StoreTarget"] = None) -> None:
        """Point the session at another workbook, dropping its schema memo."""

        if file_path == self.file_path and store == self.store:
            return
        self.file_path = file_path
        self.store = store
        self.worksheet_id = None
        self.table_id = None
        self.header_map = None

    def require_file_path(self) -> str:
        if not self.file_path:
            raise ConfigurationError("File path is not set. Resolve the table address first.")
        return self.file_path

    def require_site_id(self) -> str:
        if not self.site_id:
            raise ConfigurationError("Site id is not resolved yet.")
        return self.site_id

    @property
    def site_prefix(self) -> str:
        return f"{self.settings.base_url}/sites('{self.require_site_id()}')/"


__all__ = ["SessionContext"]
