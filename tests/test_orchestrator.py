import threading
from pathlib import Path

import pytest

from business_extractor.core import orchestrator as orchestrator_module
from business_extractor.core.orchestrator import (
    EmptyResultError,
    InvalidExportFormat,
    InvalidSearchRequest,
    TaskOrchestrator,
)
from business_extractor.models import BusinessRecord, SearchRequest, TaskState
from business_extractor.vendors.google_places import GooglePlacesError, RequestDeniedError


class FakePlacesClient:
    def __init__(self, items=None, search_errors=None, detail_errors=(), details=None, gate=None):
        self.items = items or {}
        self.search_errors = search_errors or {}
        self.detail_errors = set(detail_errors)
        self.details_by_id = details or {}
        self.gate = gate
        self.detail_calls = []

    def search(self, category, location):
        if location in self.search_errors:
            raise self.search_errors[location]
        if self.gate is not None and location == "slow":
            self.gate.wait(5)
        for place_id in self.items.get(location, []):
            yield BusinessRecord(id=place_id, business_name=f"bare {place_id}", address="vicinity")

    def details(self, place_id):
        self.detail_calls.append(place_id)
        if place_id in self.detail_errors:
            raise GooglePlacesError("NOT_FOUND")
        return self.details_by_id.get(place_id) or BusinessRecord(
            id=place_id, business_name=f"Business {place_id}", address="1 Main St", city="Berlin"
        )


class FakeScraper:
    def __init__(self, emails=None, errors=()):
        self.emails = emails or {}
        self.errors = set(errors)
        self.calls = []

    def extract(self, website):
        self.calls.append(website)
        if website in self.errors:
            raise RuntimeError("scrape exploded")
        return self.emails.get(website)


@pytest.fixture
def make_orchestrator(tmp_path):
    created = []

    def factory(places=None, scraper=None, **kwargs):
        kwargs.setdefault("export_dir", str(tmp_path / "exports"))
        kwargs.setdefault("max_workers", 4)
        instance = TaskOrchestrator(places or FakePlacesClient(), scraper or FakeScraper(), **kwargs)
        created.append(instance)
        return instance

    yield factory
    for instance in created:
        instance.shutdown()


def run(orchestrator, categories, locations, save_to_database=False):
    token = orchestrator.initiate_search(
        SearchRequest(categories=categories, locations=locations, save_to_database=save_to_database)
    )
    assert orchestrator.wait_for_completion(timeout=5)
    return token


def test_creates_one_task_per_category_and_expanded_location(make_orchestrator):
    orchestrator = make_orchestrator()

    token = run(orchestrator, ["cafe", "bar"], ["Turkey", "Berlin"])

    tasks = orchestrator.get_task_statuses()
    assert isinstance(token, str) and token
    assert len(tasks) == 2 * 82
    assert len({task.id for task in tasks}) == len(tasks)
    assert {(task.category, task.location) for task in tasks if task.location == "Berlin"} == {
        ("cafe", "Berlin"),
        ("bar", "Berlin"),
    }
    assert all(task.status == TaskState.COMPLETED for task in tasks)


def test_pipeline_enriches_and_completes(make_orchestrator):
    places = FakePlacesClient(
        items={"Berlin": ["p1", "p2"]},
        details={"p1": BusinessRecord(id="p1", business_name="Cafe One", website="https://one.test")},
    )
    scraper = FakeScraper(emails={"https://one.test": "hi@one.test"})
    orchestrator = make_orchestrator(places, scraper)

    run(orchestrator, ["cafe"], ["Berlin"])

    [task] = orchestrator.get_task_statuses()
    assert task.status == TaskState.COMPLETED
    assert task.processed_items == task.total_items == 2

    results = orchestrator.get_results()
    assert results.status == TaskState.COMPLETED
    assert results.total == 2
    by_id = {record.id: record for record in results.businesses}
    assert by_id["p1"].business_name == "Cafe One"
    assert by_id["p1"].email == "hi@one.test"
    assert by_id["p1"].category == by_id["p1"].real_category == "cafe"
    assert by_id["p2"].city == "Berlin"
    assert scraper.calls == ["https://one.test"]
    assert places.detail_calls == ["p1", "p2"]


def test_scrape_skipped_when_email_known(make_orchestrator):
    places = FakePlacesClient(
        items={"Berlin": ["p1"]},
        details={"p1": BusinessRecord(id="p1", email="owner@one.test", website="https://one.test")},
    )
    scraper = FakeScraper()
    orchestrator = make_orchestrator(places, scraper)

    run(orchestrator, ["cafe"], ["Berlin"])

    assert scraper.calls == []
    assert orchestrator.get_results().businesses[0].email == "owner@one.test"


def test_detail_and_scrape_failures_do_not_fail_task(make_orchestrator):
    places = FakePlacesClient(
        items={"Berlin": ["p1", "p2"]},
        detail_errors={"p1"},
        details={"p2": BusinessRecord(id="p2", business_name="Two", website="https://two.test")},
    )
    scraper = FakeScraper(errors={"https://two.test"})
    orchestrator = make_orchestrator(places, scraper)

    run(orchestrator, ["cafe"], ["Berlin"])

    [task] = orchestrator.get_task_statuses()
    assert task.status == TaskState.COMPLETED
    assert task.processed_items == 2
    by_id = {record.id: record for record in orchestrator.get_results().businesses}
    assert by_id["p1"].business_name == "bare p1"
    assert by_id["p1"].address == "vicinity"
    assert by_id["p2"].email is None


def test_search_failure_only_fails_that_task(make_orchestrator):
    places = FakePlacesClient(
        items={"Berlin": ["p1"]},
        search_errors={"Paris": RequestDeniedError("Google Places API request denied: bad key")},
    )
    orchestrator = make_orchestrator(places)

    run(orchestrator, ["cafe"], ["Berlin", "Paris"])

    tasks = {task.location: task for task in orchestrator.get_task_statuses()}
    assert tasks["Paris"].status == TaskState.FAILED
    assert "bad key" in tasks["Paris"].message
    assert tasks["Paris"].total_items is None
    assert tasks["Berlin"].status == TaskState.COMPLETED
    results = orchestrator.get_results()
    assert results.status == TaskState.COMPLETED
    assert [record.id for record in results.businesses] == ["p1"]


def test_persistence_flag_controls_upserts(make_orchestrator):
    saved = []
    places = FakePlacesClient(items={"Berlin": ["p1", "p2"]})
    orchestrator = make_orchestrator(places, upsert=lambda record: saved.append(record.id))

    run(orchestrator, ["cafe"], ["Berlin"], save_to_database=False)
    assert saved == []

    run(orchestrator, ["cafe"], ["Berlin"], save_to_database=True)
    assert saved == ["p1", "p2"]


def test_persistence_default_and_failures_are_logged(make_orchestrator, caplog):
    def failing_upsert(record):
        raise RuntimeError("db down")

    places = FakePlacesClient(items={"Berlin": ["p1"]})
    orchestrator = make_orchestrator(places, upsert=failing_upsert, save_to_database_default=True)

    with caplog.at_level("ERROR"):
        run(orchestrator, ["cafe"], ["Berlin"], save_to_database=None)

    [task] = orchestrator.get_task_statuses()
    assert task.status == TaskState.COMPLETED
    assert orchestrator.get_results().total == 1
    assert "db down" in " ".join(caplog.messages)


def test_invalid_request_rejected_before_reset(make_orchestrator):
    places = FakePlacesClient(items={"Berlin": ["p1"]})
    orchestrator = make_orchestrator(places)
    run(orchestrator, ["cafe"], ["Berlin"])

    with pytest.raises(InvalidSearchRequest):
        orchestrator.initiate_search(SearchRequest(categories=[], locations=["Berlin"]))
    with pytest.raises(InvalidSearchRequest):
        orchestrator.initiate_search(SearchRequest(categories=["cafe"], locations=["  "]))

    assert orchestrator.get_results().total == 1
    assert len(orchestrator.get_task_statuses()) == 1


def test_new_search_replaces_previous_results(make_orchestrator):
    places = FakePlacesClient(items={"Berlin": ["p1"], "Paris": ["p9"]})
    orchestrator = make_orchestrator(places)

    run(orchestrator, ["cafe"], ["Berlin"])
    run(orchestrator, ["cafe"], ["Paris"])

    assert [record.id for record in orchestrator.get_results().businesses] == ["p9"]
    assert [task.location for task in orchestrator.get_task_statuses()] == ["Paris"]


def test_initiate_search_does_not_wait_for_pipelines(make_orchestrator):
    gate = threading.Event()
    places = FakePlacesClient(items={"slow": ["s1"]}, gate=gate)
    orchestrator = make_orchestrator(places)

    orchestrator.initiate_search(SearchRequest(categories=["cafe"], locations=["slow"], save_to_database=False))

    assert orchestrator.get_results().status == TaskState.PROCESSING
    gate.set()
    assert orchestrator.wait_for_completion(timeout=5)
    assert orchestrator.get_results().status == TaskState.COMPLETED


def test_superseded_run_never_leaks_records(make_orchestrator):
    gate = threading.Event()
    places = FakePlacesClient(items={"slow": ["old-1", "old-2"], "fast": ["new-1"]}, gate=gate)
    orchestrator = make_orchestrator(places)

    orchestrator.initiate_search(SearchRequest(categories=["cafe"], locations=["slow"], save_to_database=False))
    run(orchestrator, ["cafe"], ["fast"])
    gate.set()
    orchestrator.shutdown()

    results = orchestrator.get_results()
    assert [record.id for record in results.businesses] == ["new-1"]
    assert [task.location for task in orchestrator.get_task_statuses()] == ["fast"]


def test_export_requires_results(make_orchestrator):
    orchestrator = make_orchestrator()

    with pytest.raises(EmptyResultError):
        orchestrator.export_results("csv")
    with pytest.raises(EmptyResultError):
        orchestrator.export_results("pdf")


def test_export_validates_format_and_writes_file(make_orchestrator):
    orchestrator = make_orchestrator(FakePlacesClient(items={"Berlin": ["p1"]}))
    run(orchestrator, ["cafe"], ["Berlin"])

    with pytest.raises(InvalidExportFormat):
        orchestrator.export_results("pdf")

    path = Path(orchestrator.export_results("CSV"))
    assert path.exists()
    assert path.suffix == ".csv"


def test_export_formats_cover_excel_alias():
    assert orchestrator_module.EXPORT_FORMATS["excel"] is orchestrator_module.EXPORT_FORMATS["xlsx"]
