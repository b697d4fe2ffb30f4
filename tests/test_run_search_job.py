import argparse

import pytest

from business_extractor.core.config import ConfigError
from business_extractor.jobs import run_search
from business_extractor.models import BusinessRecord, SearchResults, TaskState, TaskStatus


class DummySettings:
    def __init__(self, api_key="test-key"):
        self.google_api_key = api_key
        self.database_url = "postgres://"
        self.worker_port = 9000


class DummyOrchestrator:
    def __init__(self, records=None):
        self.records = records or []
        self.requests = []
        self.exports = []
        self.waited = False
        self.shut_down = False

    def initiate_search(self, search_request):
        self.requests.append(search_request)
        return "token-1"

    def wait_for_completion(self, timeout=None):
        self.waited = True
        return True

    def get_task_statuses(self):
        return [
            TaskStatus(id="t1", category="cafe", location="Berlin", status=TaskState.COMPLETED),
            TaskStatus(id="t2", category="cafe", location="Paris", status=TaskState.FAILED, message="denied"),
        ]

    def get_results(self):
        return SearchResults(businesses=self.records, total=len(self.records), status=TaskState.COMPLETED)

    def export_results(self, export_format):
        self.exports.append(export_format)
        return f"exports/business_export.{export_format}"

    def shutdown(self, wait_for_tasks=True):
        self.shut_down = True


def test_run_search_job_requires_api_key(monkeypatch):
    monkeypatch.setattr(run_search, "get_settings", lambda: DummySettings(api_key=""))

    with pytest.raises(ConfigError):
        run_search.run_search_job(
            categories=["cafe"],
            locations=["Berlin"],
            save_to_database=None,
            export_format=None,
            orchestrator=DummyOrchestrator(),
        )


def test_run_search_job_waits_and_exports(monkeypatch, caplog):
    monkeypatch.setattr(run_search, "get_settings", lambda: DummySettings())
    orchestrator = DummyOrchestrator(records=[BusinessRecord(id="p1")])

    with caplog.at_level("WARNING"):
        path = run_search.run_search_job(
            categories=["cafe"],
            locations=["Berlin", "Paris"],
            save_to_database=False,
            export_format="csv",
            orchestrator=orchestrator,
        )

    assert path == "exports/business_export.csv"
    assert orchestrator.waited is True
    assert orchestrator.shut_down is True
    assert orchestrator.requests[0].save_to_database is False
    assert orchestrator.exports == ["csv"]
    assert "denied" in caplog.text


def test_run_search_job_skips_empty_export(monkeypatch):
    monkeypatch.setattr(run_search, "get_settings", lambda: DummySettings())
    orchestrator = DummyOrchestrator()

    path = run_search.run_search_job(
        categories=["cafe"],
        locations=["Berlin"],
        save_to_database=None,
        export_format="xlsx",
        orchestrator=orchestrator,
    )

    assert path is None
    assert orchestrator.exports == []
    assert orchestrator.shut_down is True


def test_build_parser_defaults():
    parser = run_search.build_parser()
    args = parser.parse_args(["--category", "cafe", "--category", "bar", "--location", "Turkey"])

    assert isinstance(parser, argparse.ArgumentParser)
    assert args.categories == ["cafe", "bar"]
    assert args.locations == ["Turkey"]
    assert args.save_to_database is None
    assert args.export_format is None


def test_build_parser_save_flags():
    parser = run_search.build_parser()

    assert parser.parse_args(["--category", "cafe", "--location", "Izmir", "--save"]).save_to_database is True
    assert parser.parse_args(["--category", "cafe", "--location", "Izmir", "--no-save"]).save_to_database is False
    with pytest.raises(SystemExit):
        parser.parse_args(["--category", "cafe", "--location", "Izmir", "--save", "--no-save"])
