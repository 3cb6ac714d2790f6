"""Configuration helpers for the sales rule synchronisation engine."""
from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


ENV_PREFIX = "SALESRULE_SYNC_"
DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_SITE_PATH_PREFIX = "AXP"
DEFAULT_GRANT_TYPE = "client_credentials"
DEFAULT_AUTH_SCOPE = "https://graph.microsoft.com/.default"
TENANT_PLACEHOLDER = "{{Tenent_ID}}"

# Action parameter names -> settings attribute
PARAM_KEYS: Mapping[str, str] = {
    "MICROSOFT_GRAPH_BASE_URL": "graph_base_url",
    "SHAREPOINT_HOST_NAME": "sharepoint_host_name",
    "SHAREPOINT_DIRECTORY_PATH_FROM_ROOT": "directory_path_from_root",
    "FILE_NAME_TO_READ": "file_name_to_read",
    "ENTRA_TOKEN_ENDPOINT": "token_endpoint",
    "ENTRA_TENANT_ID": "tenant_id",
    "ENTRA_CLIENT_ID": "client_id",
    "ENTRA_CLIENT_SECRET": "client_secret",
    "ENTRA_AUTH_SCOPE": "auth_scope",
    "ENTRA_AUTH_GRANT_TYPE": "grant_type",
    "ENTRA_SITE_ID": "site_id",
    "LOG_LEVEL": "log_level",
}


@dataclass
class SyncSettings:
    """Plain configuration injected into every synchronisation call."""

    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    sharepoint_host_name: str = ""
    site_path_prefix: str = DEFAULT_SITE_PATH_PREFIX
    directory_path_from_root: str = ""
    file_name_to_read: str = ""
    token_endpoint: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    auth_scope: str = DEFAULT_AUTH_SCOPE
    grant_type: str = DEFAULT_GRANT_TYPE
    site_id: str = ""
    log_level: str = "info"
    request_timeout: float = 30.0
    lock_retry_interval: float = 0.5
    lock_retry_ceiling: float = 30.0
    brand_mapping: Dict[str, Any] = field(default_factory=dict)
    store_code_mapping: Dict[str, Any] = field(default_factory=dict)

    @property
    def base_url(self) -> str:
        return self.graph_base_url.rstrip("/")

    def resolved_token_endpoint(self) -> str:
        if not self.token_endpoint:
            raise ConfigurationError("Token endpoint is not configured.")
        if TENANT_PLACEHOLDER in self.token_endpoint:
            if not self.tenant_id:
                raise ConfigurationError("Tenant id is required by the token endpoint.")
            return self.token_endpoint.replace(TENANT_PLACEHOLDER, self.tenant_id)
        return self.token_endpoint

    def to_json(self) -> Dict[str, object]:
        payload = {item.name: getattr(self, item.name) for item in fields(self)}
        payload["client_secret"] = "***" if self.client_secret else ""
        return payload


_FLOAT_LIMITS: Mapping[str, tuple] = {
    "request_timeout": (1.0, 300.0),
    "lock_retry_interval": (0.0, 10.0),
    "lock_retry_ceiling": (0.0, 600.0),
}
_MAPPING_KEYS = ("brand_mapping", "store_code_mapping")
_MAPPING_PATH_KEYS = {
    "brand_mapping_path": "brand_mapping",
    "store_code_mapping_path": "store_code_mapping",
}


def _read_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise ConfigurationError(f"Settings file could not be read: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Settings file is not valid JSON: {path} ({exc.msg})") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file must contain a JSON object: {path}")
    return data


def _clamp(key: str, value: Any, default: float) -> float:
    low, high = _FLOAT_LIMITS[key]
    try:
        return max(low, min(high, float(value)))
    except (TypeError, ValueError):
        logger.debug("Ignoring invalid value for %s: %r", key, value)
        return default


def _merge(settings: SyncSettings, data: Mapping[str, Any], *, base_dir: str = "") -> SyncSettings:
    known = {item.name for item in fields(settings)}
    for key, value in data.items():
        if key in _MAPPING_PATH_KEYS and isinstance(value, str) and value:
            path = value if os.path.isabs(value) or not base_dir else os.path.join(base_dir, value)
            getattr(settings, _MAPPING_PATH_KEYS[key]).update(_read_json(path))
        elif key in _MAPPING_KEYS:
            if isinstance(value, Mapping):
                getattr(settings, key).update(value)
        elif key in _FLOAT_LIMITS:
            setattr(settings, key, _clamp(key, value, getattr(settings, key)))
        elif key in known and isinstance(value, str):
            setattr(settings, key, value.strip())
        elif key not in known:
            logger.debug("Ignoring unknown settings key %s", key)
    return settings


def load_sync_settings(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SyncSettings:
    """Load settings from ``path`` (optional) and ``SALESRULE_SYNC_*`` variables."""

    settings = SyncSettings()
    if path:
        _merge(settings, _read_json(path), base_dir=os.path.dirname(os.path.abspath(path)))

    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for item in fields(settings):
        if item.name in _MAPPING_KEYS:
            continue
        value = env.get(ENV_PREFIX + item.name.upper())
        if value:
            overrides[item.name] = value
    return _merge(settings, overrides)


def from_params(params: Mapping[str, Any], base: Optional[SyncSettings] = None) -> SyncSettings:
    """Build settings from an action parameter dictionary."""

    settings = copy.deepcopy(base) if base is not None else SyncSettings()
    translated: Dict[str, Any] = {}
    for param, attribute in PARAM_KEYS.items():
        value = params.get(param)
        if value not in (None, ""):
            translated[attribute] = str(value)
    for key in _MAPPING_KEYS:
        value = params.get(key)
        if isinstance(value, Mapping):
            translated[key] = value
    return _merge(settings, translated)


__all__ = [
    "ENV_PREFIX",
    "PARAM_KEYS",
    "SyncSettings",
    "from_params",
    "load_sync_settings",
]
