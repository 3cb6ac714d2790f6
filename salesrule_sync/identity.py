"""Resolve brand and site codes into the address of a remote workbook."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from .errors import ConfigurationError, NotFoundError, TransportError
from .graph_client import GraphResponse
from .session import SessionContext
from .settings import SyncSettings


@dataclass(frozen=True)
class StoreTarget:
    """Directory segment for a site code plus optional worksheet and locale overrides."""

    code: str
    sheet_id: Optional[str] = None
    locale: Optional[str] = None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _get_or_not_found(session: SessionContext, url: str, message: str) -> GraphResponse:
    try:
        return session.client.get(url)
    except TransportError as exc:
        if exc.status_code == 404:
            raise NotFoundError(message) from exc
        raise


def brand_entry(settings: SyncSettings, brand: str) -> Tuple[str, Optional[str]]:
    """Return ``(url_key, site_id)`` configured for ``brand``."""

    entry = settings.brand_mapping.get(brand, brand)
    if isinstance(entry, Mapping):
        url_key = _clean(entry.get("urlKey")) or brand
        return url_key, _clean(entry.get("siteId"))
    return str(entry), None


def resolve_store(settings: SyncSettings, site_code: str) -> StoreTarget:
    entry = settings.store_code_mapping.get(site_code, site_code)
    if isinstance(entry, Mapping):
        code = _clean(entry.get("code")) or site_code
        return StoreTarget(
            code=code,
            sheet_id=_clean(entry.get("sheetId")),
            locale=_clean(entry.get("locale")),
        )
    return StoreTarget(code=str(entry))


def locale_code(settings: SyncSettings, site_code: str) -> str:
    """Return the key selecting ``site_code``'s text out of a locale map."""

    return resolve_store(settings, site_code).locale or site_code


def directory_path(settings: SyncSettings, site_code: str) -> str:
    """Return the drive path of the directory holding ``site_code``'s workbook."""

    store = resolve_store(settings, site_code)
    root = settings.directory_path_from_root.strip("/")
    return f"{root}/{store.code}" if root else store.code


def resolve_site_id(session: SessionContext, brand: Optional[str]) -> str:
    """Return the site id for ``brand``, memoised on the session."""

    if session.site_id:
        return session.site_id
    if not brand:
        session.logger.debug("Brand is not set on the event; cannot resolve the site id")
        raise ConfigurationError("Brand is not set. Please set the brand before resolving the site.")

    url_key, configured_id = brand_entry(session.settings, brand)
    if configured_id:
        session.site_id = configured_id
        return configured_id

    settings = session.settings
    if not settings.sharepoint_host_name:
        raise ConfigurationError("SharePoint host name is not configured.")
    url = (
        f"{settings.base_url}/sites/{settings.sharepoint_host_name}:"
        f"/sites/{settings.site_path_prefix}/{url_key}?$select=id"
    )
    response = _get_or_not_found(session, url, f"Site not found for brand {brand!r}")
    site_id = _clean(response.get("id"))
    if not site_id:
        session.logger.debug("Site id missing from response for brand %s: %r", brand, response.payload)
        raise NotFoundError(f"Site id not found for brand {brand!r}. Check the brand mapping.")
    session.site_id = site_id
    return site_id


def resolve_file_item(session: SessionContext, site_code: str) -> str:
    """Return the ``drive/items/{id}`` address of ``site_code``'s workbook."""

    cached = session.file_items.get(site_code)
    if cached:
        return cached

    file_name = session.settings.file_name_to_read
    if not file_name:
        raise ConfigurationError("File name to read is not configured.")
    prefix = session.site_prefix
    url = f"{prefix}drive/root:/{directory_path(session.settings, site_code)}/{file_name}?$select=id"
    response = _get_or_not_found(session, url, f"Workbook not found for site {site_code!r}")
    item_id = _clean(response.get("id"))
    if not item_id:
        session.logger.debug("File id missing from response for %s: %r", site_code, response.payload)
        raise NotFoundError(f"File id not found for site {site_code!r}. Check the file path.")

    file_path = f"{prefix}drive/items/{item_id}"
    session.file_items[site_code] = file_path
    return file_path


def resolve_table_address(session: SessionContext, brand: Optional[str], site_code: str) -> str:
    """Resolve and bind the workbook for ``site_code`` on ``session``."""

    resolve_site_id(session, brand)
    store = resolve_store(session.settings, site_code)
    file_path = resolve_file_item(session, site_code)
    session.bind_file(file_path, store)
    session.logger.debug("Site %s resolved to %s", site_code, file_path)
    return file_path


__all__ = [
    "StoreTarget",
    "brand_entry",
    "directory_path",
    "locale_code",
    "resolve_file_item",
    "resolve_site_id",
    "resolve_store",
    "resolve_table_address",
]
