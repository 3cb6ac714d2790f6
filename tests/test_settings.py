from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salesrule_sync import settings as settings_module
from salesrule_sync.errors import ConfigurationError
from salesrule_sync.settings import SyncSettings, from_params, load_sync_settings


def test_defaults() -> None:
    config = SyncSettings()
    assert config.site_path_prefix == "AXP"
    assert config.grant_type == "client_credentials"
    assert config.lock_retry_interval == 0.5
    assert config.lock_retry_ceiling == 30.0
    assert config.base_url == "https://graph.microsoft.com/v1.0"


def test_load_from_file_with_mapping_paths(tmp_path: Path) -> None:
    (tmp_path / "brands.json").write_text(json.dumps({"brand-x": "BrandX"}), encoding="utf-8")
    (tmp_path / "stores.json").write_text(json.dumps({"ae": {"code": "UAE", "sheetId": "s1"}}), encoding="utf-8")
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "sharepoint_host_name": " contoso.sharepoint.com ",
                "brand_mapping_path": "brands.json",
                "store_code_mapping_path": "stores.json",
                "request_timeout": 5000,
                "unknown": "ignored",
            }
        ),
        encoding="utf-8",
    )

    config = load_sync_settings(str(path), environ={})

    assert config.sharepoint_host_name == "contoso.sharepoint.com"
    assert config.brand_mapping == {"brand-x": "BrandX"}
    assert config.store_code_mapping["ae"]["code"] == "UAE"
    assert config.request_timeout == 300.0


def test_environment_overrides_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"client_id": "from-file", "log_level": "info"}), encoding="utf-8")

    config = load_sync_settings(
        str(path),
        environ={"SALESRULE_SYNC_CLIENT_ID": "from-env", "SALESRULE_SYNC_LOCK_RETRY_INTERVAL": "abc"},
    )

    assert config.client_id == "from-env"
    assert config.lock_retry_interval == 0.5


def test_invalid_settings_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_sync_settings(str(path), environ={})
    with pytest.raises(ConfigurationError):
        load_sync_settings(str(tmp_path / "missing.json"), environ={})


def test_from_params_does_not_mutate_base() -> None:
    base = SyncSettings(client_id="base", brand_mapping={"a": "A"})
    config = from_params(
        {
            "ENTRA_CLIENT_ID": "param",
            "ENTRA_SITE_ID": "site-9",
            "LOG_LEVEL": "debug",
            "FILE_NAME_TO_READ": "",
            "brand_mapping": {"b": "B"},
        },
        base,
    )

    assert config.client_id == "param"
    assert config.site_id == "site-9"
    assert config.log_level == "debug"
    assert config.brand_mapping == {"a": "A", "b": "B"}
    assert base.client_id == "base"
    assert base.brand_mapping == {"a": "A"}
    assert set(settings_module.PARAM_KEYS.values()) <= {f for f in config.to_json()}


def test_token_endpoint_placeholder() -> None:
    config = SyncSettings(token_endpoint="https://login/{{Tenent_ID}}/token", tenant_id="t-1")
    assert config.resolved_token_endpoint() == "https://login/t-1/token"

    config.tenant_id = ""
    with pytest.raises(ConfigurationError):
        config.resolved_token_endpoint()
    with pytest.raises(ConfigurationError):
        SyncSettings().resolved_token_endpoint()


def test_to_json_masks_secret() -> None:
    payload = SyncSettings(client_secret="hunter2").to_json()
    assert payload["client_secret"] == "***"
    assert SyncSettings().to_json()["client_secret"] == ""
