"""Apply one sales rule change event to every affected site table."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from .azure_auth import get_access_token
from .errors import ConfigurationError, RowNotFoundError, SalesRuleSyncError
from .identity import locale_code, resolve_site_id, resolve_table_address
from .lock_retry import LockRetryPolicy
from .logging_config import get_logger
from .record import KEY_FIELD, Record
from .session import SessionContext
from .settings import SyncSettings
from .table_writer import TableWriter
from .workbook_file import legacy_file_path, remove_from_workbook

TokenProvider = Callable[[SyncSettings], str]

ACTION_DEACTIVATE = "deactivate"
ACTION_UPSERT = "upsert"
ACTION_REMOVE = "remove"
NO_CHANGES = "No changes to update"
SYNCED = "Data synced successfully"


def split_codes(value: Any) -> List[str]:
    """Split a comma separated website list, dropping blanks and duplicates."""

    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else str(value).split(",")
    codes: List[str] = []
    for item in items:
        code = str(item).strip()
        if code and code not in codes:
            codes.append(code)
    return codes


def _sales_rule_payload(params: Mapping[str, Any]) -> Mapping[str, Any]:
    data = params.get("data")
    if isinstance(data, Mapping):
        value = data.get("value")
        if isinstance(value, Mapping) and isinstance(value.get("salesRule"), Mapping):
            return value["salesRule"]
        if isinstance(data.get("salesRule"), Mapping):
            return data["salesRule"]
    if isinstance(params.get("salesRule"), Mapping):
        return params["salesRule"]
    return {}


@dataclass
class SalesRuleEvent:
    """A sales rule change and the websites it moved from and to."""

    record: Record
    brand: Optional[str] = None
    pre_websites: List[str] = field(default_factory=list)
    post_websites: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, params: Mapping[str, Any]) -> "SalesRuleEvent":
        payload = _sales_rule_payload(params)
        if not payload:
            raise ConfigurationError("Event does not contain a salesRule payload")
        record = Record.from_mapping(payload)
        if record.get(KEY_FIELD) in (None, ""):
            raise ConfigurationError("salesRule.schedule_id is required")
        brand = payload.get("brand")
        return cls(
            record=record,
            brand=str(brand).strip() if brand else None,
            pre_websites=split_codes(payload.get("pre_website")),
            post_websites=split_codes(payload.get("post_website")),
        )

    @property
    def schedule_id(self) -> Any:
        return self.record.get(KEY_FIELD)

    @property
    def removed_websites(self) -> List[str]:
        return [code for code in self.pre_websites if code not in self.post_websites]

    def has_changes(self) -> bool:
        return bool(self.removed_websites or self.post_websites)


@dataclass
class SiteOutcome:
    site_code: str
    action: str
    ok: bool
    not_found: bool = False
    error: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "site_code": self.site_code,
            "action": self.action,
            "ok": self.ok,
            "not_found": self.not_found,
            "error": self.error,
        }


@dataclass
class SyncReport:
    schedule_id: Any
    message: str = SYNCED
    outcomes: List[SiteOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(outcome.ok or outcome.not_found for outcome in self.outcomes)

    @property
    def failures(self) -> List[SiteOutcome]:
        return [outcome for outcome in self.outcomes if not (outcome.ok or outcome.not_found)]

    def to_json(self) -> Dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "message": self.message,
            "ok": self.ok,
            "sites": [outcome.to_json() for outcome in self.outcomes],
        }


class SalesRuleSyncService:
    """Coordinate deactivation and upsert of one event across site tables.

    Each call to :meth:`sync` or :meth:`remove` obtains its own credential and
    :class:`SessionContext`; nothing is shared between events. Sites are
    processed one at a time, removals first, and one site's failure never
    undoes another site's completed write.

    Table writes retry while the workbook is locked. ``clear_stale_locks``
    only affects :meth:`remove`, whose uploads replace the whole workbook.
    """

    def __init__(
        self,
        settings: SyncSettings,
        *,
        token_provider: Optional[TokenProvider] = None,
        http: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
        clear_stale_locks: bool = False,
        wait_for_uploads: bool = False,
    ) -> None:
        self.settings = settings
        self._token_provider = token_provider or (lambda config: get_access_token(config, http=http))
        self._http = http
        self._logger = logger or get_logger()
        self._clear_stale_locks = clear_stale_locks
        self._wait_for_uploads = wait_for_uploads
        self._policy = LockRetryPolicy.from_settings(settings)

    def open_session(self) -> SessionContext:
        token = self._token_provider(self.settings)
        return SessionContext.open(self.settings, token, http=self._http, logger=self._logger)

    # ------------------------------------------------------------------
    # Table API path
    # ------------------------------------------------------------------
    def sync(self, event: SalesRuleEvent) -> SyncReport:
        """Deactivate the rule on removed websites, then upsert it on current ones."""

        report = SyncReport(schedule_id=event.schedule_id)
        if not event.has_changes():
            report.message = NO_CHANGES
            return report

        session = self.open_session()
        resolve_site_id(session, event.brand)
        for site_code in event.removed_websites:
            report.outcomes.append(self._apply(session, event, site_code, ACTION_DEACTIVATE))
        for site_code in event.post_websites:
            report.outcomes.append(self._apply(session, event, site_code, ACTION_UPSERT))
        if not report.ok:
            report.message = f"{len(report.failures)} site(s) failed to sync"
        return report

    def _writer(self, session: SessionContext, site_code: str) -> TableWriter:
        return TableWriter(session, locale_code(self.settings, site_code), lock_policy=self._policy)

    def _apply(self, session: SessionContext, event: SalesRuleEvent, site_code: str, action: str) -> SiteOutcome:
        log = session.logger
        try:
            resolve_table_address(session, event.brand, site_code)
            writer = self._writer(session, site_code)
            if action == ACTION_DEACTIVATE:
                ok = writer.deactivate(event.schedule_id)
            else:
                ok = writer.upsert(event.record)
        except RowNotFoundError as exc:
            log.info("Site %s: %s", site_code, exc)
            return SiteOutcome(site_code, action, ok=False, not_found=True, error=str(exc))
        except SalesRuleSyncError as exc:
            log.error("Site %s: %s failed: %s", site_code, action, exc)
            return SiteOutcome(site_code, action, ok=False, error=str(exc))
        log.info("Site %s: %s schedule_id %s done", site_code, action, event.schedule_id)
        return SiteOutcome(site_code, action, ok=ok)

    # ------------------------------------------------------------------
    # Whole-file path
    # ------------------------------------------------------------------
    def remove(self, event: SalesRuleEvent) -> SyncReport:
        """Delete the rule's rows from the legacy per-site promotion workbooks."""

        report = SyncReport(schedule_id=event.schedule_id)
        if not event.has_changes():
            report.message = NO_CHANGES
            return report
        if not event.brand:
            raise ConfigurationError("Brand is required to locate the promotion workbooks")

        session = self.open_session()
        site_id = self.settings.site_id or resolve_site_id(session, event.brand)
        for site_code in event.removed_websites:
            report.outcomes.append(self._remove_from_file(session, site_id, event, site_code))
        if not report.ok:
            report.message = f"{len(report.failures)} site(s) failed to sync"
        return report

    def _remove_from_file(
        self,
        session: SessionContext,
        site_id: str,
        event: SalesRuleEvent,
        site_code: str,
    ) -> SiteOutcome:
        file_path = legacy_file_path(self.settings, site_id, event.brand or "", site_code)
        try:
            task = remove_from_workbook(
                session.client,
                file_path,
                [event.schedule_id],
                policy=self._policy,
                clear_stale_locks=self._clear_stale_locks,
                log=session.logger,
            )
        except SalesRuleSyncError as exc:
            session.logger.error("Site %s: removal failed: %s", site_code, exc)
            return SiteOutcome(site_code, ACTION_REMOVE, ok=False, error=str(exc))

        if not self._wait_for_uploads:
            return SiteOutcome(site_code, ACTION_REMOVE, ok=True)
        task.wait()
        error = None if task.succeeded else str(task.error or "upload cancelled")
        return SiteOutcome(site_code, ACTION_REMOVE, ok=task.succeeded, error=error)


__all__ = [
    "ACTION_DEACTIVATE",
    "ACTION_REMOVE",
    "ACTION_UPSERT",
    "NO_CHANGES",
    "SYNCED",
    "SalesRuleEvent",
    "SalesRuleSyncService",
    "SiteOutcome",
    "SyncReport",
    "split_codes",
]
