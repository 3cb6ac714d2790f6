"""Entry points that turn an event payload into a structured response.

Both actions take the raw parameter dictionary delivered with the event: the
upper-case configuration keys understood by
:func:`~salesrule_sync.settings.from_params` plus the ``data`` payload carrying
the ``salesRule``. They never raise; every failure is reported through the
returned ``statusCode``.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

from .errors import ConfigurationError, SalesRuleSyncError
from .logging_config import configure_logging, get_logger
from .settings import SyncSettings, from_params
from .sync_service import SalesRuleEvent, SalesRuleSyncService, SyncReport

ServiceFactory = Callable[[SyncSettings], SalesRuleSyncService]

logger = get_logger()


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {"statusCode": status_code, "body": body}


def _error(status_code: int, message: str) -> Dict[str, Any]:
    return _response(status_code, {"error": message})


def _report_response(report: SyncReport) -> Dict[str, Any]:
    body = report.to_json()
    return _response(200 if report.ok else 500, body)


def _run(
    params: Mapping[str, Any],
    operation: Callable[[SalesRuleSyncService, SalesRuleEvent], SyncReport],
    service_factory: ServiceFactory,
    base: Optional[SyncSettings],
) -> Dict[str, Any]:
    settings = from_params(params, base)
    configure_logging(settings.log_level)

    try:
        event = SalesRuleEvent.from_payload(params)
    except ConfigurationError as exc:
        logger.error("Rejected event: %s", exc)
        return _error(400, str(exc))

    logger.info(
        "Processing schedule_id %s (pre: %s, post: %s)",
        event.schedule_id,
        ",".join(event.pre_websites) or "-",
        ",".join(event.post_websites) or "-",
    )
    try:
        report = operation(service_factory(settings), event)
    except SalesRuleSyncError as exc:
        logger.error("Synchronisation failed: %s", exc)
        return _error(500, str(exc))
    except Exception as exc:  # reported to the caller as a 500
        logger.exception("Unexpected error while synchronising")
        return _error(500, f"Unexpected error: {exc}")

    if not report.ok:
        for outcome in report.failures:
            logger.error("Site %s failed: %s", outcome.site_code, outcome.error)
    return _report_response(report)


def update_action(
    params: Mapping[str, Any],
    *,
    service_factory: ServiceFactory = SalesRuleSyncService,
    base: Optional[SyncSettings] = None,
) -> Dict[str, Any]:
    """Deactivate the rule where it was removed and upsert it where it remains."""

    return _run(params, lambda service, event: service.sync(event), service_factory, base)


def delete_action(
    params: Mapping[str, Any],
    *,
    service_factory: ServiceFactory = SalesRuleSyncService,
    base: Optional[SyncSettings] = None,
) -> Dict[str, Any]:
    """Remove the rule's rows from the per-site promotion workbooks."""

    return _run(params, lambda service, event: service.remove(event), service_factory, base)


__all__ = ["delete_action", "update_action"]
