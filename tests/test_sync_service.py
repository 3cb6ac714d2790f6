from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import pytest
from openpyxl import Workbook

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from graph_fakes import FakeDriveHttp, FakeGraphHttp, FakeTable, make_settings, sample_row, sample_rule
from salesrule_sync import sync_service, workbook_file
from salesrule_sync.errors import ConfigurationError
from salesrule_sync.record import RECORD_FIELDS
from salesrule_sync.sync_service import SalesRuleEvent, SalesRuleSyncService, split_codes

STATUS = RECORD_FIELDS.index("status")
DESCRIPTION_EN = RECORD_FIELDS.index("description_en")


class _Tokens:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, settings) -> str:
        self.calls += 1
        return "tok"


def _event(**overrides) -> SalesRuleEvent:
    return SalesRuleEvent.from_payload({"data": {"value": {"salesRule": sample_rule(42, **overrides)}}})


def _service(http, tokens=None, **kwargs) -> SalesRuleSyncService:
    return SalesRuleSyncService(make_settings(), token_provider=tokens or _Tokens(), http=http, **kwargs)


def _writes(http: FakeGraphHttp) -> List[str]:
    return [url for method, url in http.calls if method in ("POST", "PATCH", "DELETE")]


def test_split_codes() -> None:
    assert split_codes("ae, sa,,ae , ") == ["ae", "sa"]
    assert split_codes(["kw", " ae "]) == ["kw", "ae"]
    assert split_codes(None) == []


def test_event_payload_locations() -> None:
    rule = sample_rule(5, pre_website="ae,sa", post_website="sa")
    for params in ({"data": {"value": {"salesRule": rule}}}, {"data": {"salesRule": rule}}, {"salesRule": rule}):
        event = SalesRuleEvent.from_payload(params)
        assert event.schedule_id == 5
        assert event.brand == "brand-x"
        assert event.removed_websites == ["ae"]
        assert event.post_websites == ["sa"]


def test_event_requires_payload_and_key() -> None:
    with pytest.raises(ConfigurationError):
        SalesRuleEvent.from_payload({"data": {}})
    with pytest.raises(ConfigurationError):
        SalesRuleEvent.from_payload({"salesRule": {"rule_name": "x"}})


def test_no_changes_skips_remote_calls() -> None:
    http = FakeGraphHttp()
    tokens = _Tokens()

    report = _service(http, tokens).sync(_event(pre_website="", post_website=""))

    assert report.message == sync_service.NO_CHANGES
    assert report.ok
    assert report.outcomes == []
    assert tokens.calls == 0
    assert http.calls == []


def test_deactivations_run_before_upserts() -> None:
    tables = {
        "ae": FakeTable(rows=[sample_row(42)]),
        "sa": FakeTable(rows=[sample_row(42, name="Old")]),
        "kw": FakeTable(),
    }
    http = FakeGraphHttp(tables)
    tokens = _Tokens()

    report = _service(http, tokens).sync(_event(pre_website="ae,sa", post_website="sa,kw"))

    assert report.ok
    assert report.message == sync_service.SYNCED
    assert [(o.site_code, o.action) for o in report.outcomes] == [
        ("ae", "deactivate"),
        ("sa", "upsert"),
        ("kw", "upsert"),
    ]
    writes = _writes(http)
    assert "item-ae" in writes[0]
    assert all("item-ae" not in url for url in writes[1:])
    assert tokens.calls == 1

    assert tables["ae"].rows[0][STATUS] == 0
    assert tables["sa"].rows[0][RECORD_FIELDS.index("rule_name")] == "Summer sale"
    assert tables["kw"].rows[0][DESCRIPTION_EN] == sample_rule()["description_en"]


def test_locale_defaults_to_site_code() -> None:
    tables = {"sa": FakeTable()}
    http = FakeGraphHttp(tables)

    _service(http).sync(_event(post_website="sa"))

    assert tables["sa"].rows[0][DESCRIPTION_EN] == "Summer SA"


def test_one_site_failure_does_not_undo_others() -> None:
    tables = {"ae": FakeTable()}
    http = FakeGraphHttp(tables)

    report = _service(http).sync(_event(post_website="ae,zz"))

    assert not report.ok
    assert [o.site_code for o in report.failures] == ["zz"]
    assert len(tables["ae"].rows) == 1
    assert report.message == "1 site(s) failed to sync"
    assert report.to_json()["sites"][1]["error"]


def test_deactivate_absent_row_is_not_fatal() -> None:
    tables = {"ae": FakeTable(rows=[sample_row(10)])}
    http = FakeGraphHttp(tables)

    report = _service(http).sync(_event(pre_website="ae", post_website=""))

    assert report.ok
    assert report.outcomes[0].not_found
    assert tables["ae"].writes == []


def test_missing_brand_aborts_event() -> None:
    with pytest.raises(ConfigurationError):
        _service(FakeGraphHttp({"ae": FakeTable()})).sync(_event(brand=""))


def test_table_writes_never_delete_workbook() -> None:
    tables = {"ae": FakeTable(rows=[sample_row(10)])}
    tables["ae"].locked_writes = 1
    http = FakeGraphHttp(tables)
    service = SalesRuleSyncService(
        make_settings(lock_retry_interval=0.001, lock_retry_ceiling=0.01),
        token_provider=_Tokens(),
        http=http,
        clear_stale_locks=True,
    )

    report = service.sync(_event())

    assert report.ok
    assert http.deleted_files == []
    assert tables["ae"].row_for(10) == sample_row(10)
    assert tables["ae"].row_for(42) is not None
    assert len(tables["ae"].rows) == 2


def test_remove_clears_stale_lock_by_rewriting_whole_workbook() -> None:
    settings = make_settings(site_id="site-1")
    path = workbook_file.legacy_file_path(settings, "site-1", "brand-x", "ae")
    workbook = Workbook()
    workbook.active.append(list(RECORD_FIELDS))
    workbook.active.append(sample_row(10))
    workbook.active.append(sample_row(42))
    http = FakeDriveHttp({path: workbook_file.workbook_to_bytes(workbook)})
    http.locked_uploads = 1

    service = SalesRuleSyncService(
        settings, token_provider=_Tokens(), http=http, clear_stale_locks=True, wait_for_uploads=True
    )
    report = service.remove(_event(pre_website="ae", post_website=""))

    assert report.ok
    assert http.deleted == [path]
    remaining = workbook_file.load_workbook_bytes(http.files[path]).worksheets[0]
    assert list(next(remaining.iter_rows(max_row=1, values_only=True))) == list(RECORD_FIELDS)
    assert [row[0] for row in remaining.iter_rows(min_row=2, values_only=True)] == [10]


def test_remove_edits_legacy_workbooks() -> None:
    settings = make_settings(site_id="site-1")
    path = workbook_file.legacy_file_path(settings, "site-1", "brand-x", "ae")
    workbook = Workbook()
    workbook.active.append(list(RECORD_FIELDS))
    workbook.active.append(sample_row(10))
    workbook.active.append(sample_row(42))
    http = FakeDriveHttp({path: workbook_file.workbook_to_bytes(workbook)})

    service = SalesRuleSyncService(settings, token_provider=_Tokens(), http=http, wait_for_uploads=True)
    report = service.remove(_event(pre_website="ae,sa", post_website="sa"))

    assert report.ok
    assert [(o.site_code, o.action) for o in report.outcomes] == [("ae", "remove")]
    remaining = workbook_file.load_workbook_bytes(http.files[path]).worksheets[0]
    assert [row[0] for row in remaining.iter_rows(min_row=2, values_only=True)] == [10]


def test_remove_reports_missing_workbook() -> None:
    service = SalesRuleSyncService(
        make_settings(site_id="site-1"), token_provider=_Tokens(), http=FakeDriveHttp(), wait_for_uploads=True
    )

    report = service.remove(_event(pre_website="ae", post_website=""))

    assert not report.ok
    assert report.failures[0].site_code == "ae"
