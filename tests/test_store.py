"""Tests for the in-memory and Supabase report stores."""

import json
from unittest.mock import MagicMock

import pytest

from reportjobs.reports.store import InMemoryReportStore, Report, SupabaseReportStore


class TestInMemoryReportStore:

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "reports.json"
        path.write_text(json.dumps([
            {"id": "r1", "company_name": "Acme Corp", "analysis_data": {"summary": "x"}},
            {"id": "r2", "company_name": "Globex"},
        ]))

        store = InMemoryReportStore.from_json_file(str(path))

        assert [r.id for r in store.all()] == ["r1", "r2"]
        assert store.get("r2").analysis_data is None

    def test_get_returns_copy(self, report_store):
        report = report_store.get("A")
        report.analysis_data["summary"] = "changed"
        assert report_store.get("A").analysis_data["summary"] != "changed"

    def test_save_analysis(self, report_store):
        saved = report_store.save_analysis("D", {"summary": "new"})
        assert saved.analysis_data == {"summary": "new"}
        assert saved.updated_at is not None

    def test_save_analysis_on_deleted_report(self, report_store):
        report_store.delete("A")
        with pytest.raises(KeyError):
            report_store.save_analysis("A", {})

    def test_display_names_fall_back_to_id(self, report_store):
        assert report_store.display_names(["A", "missing"]) == {"A": "Acme Corp", "missing": "missing"}


def _client_returning(data):
    client = MagicMock()
    query = client.table.return_value
    for method in ("select", "update", "eq", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data)
    return client, query


class TestSupabaseReportStore:

    def test_get(self):
        client, query = _client_returning([{"id": "r1", "company_name": "Acme Corp", "analysis_data": None}])
        store = SupabaseReportStore(client, table="reports")

        report = store.get("r1")

        assert report == Report(id="r1", company_name="Acme Corp")
        client.table.assert_called_with("reports")
        query.eq.assert_called_with("id", "r1")

    def test_get_missing(self):
        client, _ = _client_returning([])
        assert SupabaseReportStore(client).get("r1") is None

    def test_save_analysis(self):
        client, query = _client_returning([
            {"id": "r1", "company_name": "Acme Corp", "analysis_data": {"summary": "new"}}
        ])

        saved = SupabaseReportStore(client).save_analysis("r1", {"summary": "new"})

        assert saved.analysis_data == {"summary": "new"}
        update = query.update.call_args.args[0]
        assert update["analysis_data"] == {"summary": "new"}
        assert "updated_at" in update

    def test_save_analysis_missing_row(self):
        client, _ = _client_returning([])
        with pytest.raises(KeyError):
            SupabaseReportStore(client).save_analysis("r1", {})
