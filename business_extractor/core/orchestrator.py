"""Fan a search request out into per (category, location) pipelines."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable, List, Optional

from business_extractor.core.config import Settings, get_settings
from business_extractor.core.db import upsert_business
from business_extractor.core.email_scraper import EmailScraper
from business_extractor.core.locations import LocationExpander
from business_extractor.core.result_store import ResultStore
from business_extractor.etl import export
from business_extractor.etl.transform import apply_details
from business_extractor.models import BusinessRecord, SearchRequest, SearchResults, TaskStatus
from business_extractor.vendors.google_places import PlacesClient

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "csv": export.export_to_csv,
    "xlsx": export.export_to_excel,
    "excel": export.export_to_excel,
}


class InvalidSearchRequest(ValueError):
    """Raised when a search request has no usable categories or locations."""


class ExportError(RuntimeError):
    """Base class for export failures surfaced to the caller."""


class EmptyResultError(ExportError):
    """There are no records to export."""


class InvalidExportFormat(ExportError):
    """The requested export format is not supported."""


def _clean(values: Optional[Iterable[str]]) -> List[str]:
    cleaned: List[str] = []
    for value in values or []:
        if not isinstance(value, str):
            raise InvalidSearchRequest(f"expected a string, got {type(value).__name__}")
        stripped = value.strip()
        if stripped and stripped not in cleaned:
            cleaned.append(stripped)
    return cleaned


def validate_request(request: SearchRequest) -> SearchRequest:
    """Return a normalised copy of ``request`` or raise InvalidSearchRequest."""
    categories = _clean(request.categories)
    locations = _clean(request.locations)
    if not categories:
        raise InvalidSearchRequest("At least one category is required")
    if not locations:
        raise InvalidSearchRequest("At least one location is required")
    return SearchRequest(categories=categories, locations=locations, save_to_database=request.save_to_database)


class TaskOrchestrator:
    """Owns the result store and runs one search pipeline per task on a thread pool."""

    def __init__(
        self,
        places_client: PlacesClient,
        email_scraper: EmailScraper,
        *,
        store: Optional[ResultStore] = None,
        expander: Optional[LocationExpander] = None,
        upsert: Optional[Callable[[BusinessRecord], None]] = None,
        export_dir: str = "exports",
        max_workers: int = 8,
        save_to_database_default: bool = True,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.places_client = places_client
        self.email_scraper = email_scraper
        self.store = store or ResultStore()
        self.expander = expander or LocationExpander()
        self.upsert = upsert
        self.export_dir = export_dir
        self.save_to_database_default = save_to_database_default
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="search-task")
        self._run_lock = threading.Lock()
        self._futures: List[Future] = []

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TaskOrchestrator":
        settings = settings or get_settings()
        return cls(
            PlacesClient.from_settings(settings),
            EmailScraper(),
            upsert=upsert_business,
            export_dir=settings.export_dir,
            max_workers=settings.max_workers,
            save_to_database_default=settings.save_to_database,
        )

    def initiate_search(self, request: SearchRequest) -> str:
        """Reset previous results and schedule every (category, location) task.

        Returns immediately with an opaque token; progress is read through
        ``get_task_statuses`` and ``get_results``.
        """
        request = validate_request(request)
        save_to_database = (
            self.save_to_database_default if request.save_to_database is None else bool(request.save_to_database)
        )
        locations = self.expander.expand(request.locations)

        with self._run_lock:
            generation = self.store.reset()
            tasks = [
                self.store.add_task(generation, category, location)
                for category in request.categories
                for location in locations
            ]
            logger.info(
                "Starting search with %d categories and %d locations (expanded from %d): %d tasks",
                len(request.categories),
                len(locations),
                len(request.locations),
                len(tasks),
            )
            self._futures = [
                self._executor.submit(self._run_task_safe, generation, task, save_to_database)
                for task in tasks
                if task is not None
            ]

        return str(uuid.uuid4())

    def get_task_statuses(self) -> List[TaskStatus]:
        return self.store.snapshot_tasks()

    def get_results(self) -> SearchResults:
        return self.store.snapshot_results()

    def export_results(self, export_format: str) -> str:
        records = self.store.snapshot_records()
        if not records:
            raise EmptyResultError("No results to export")

        writer = EXPORT_FORMATS.get((export_format or "").strip().lower())
        if writer is None:
            raise InvalidExportFormat("Unsupported export format. Use 'csv' or 'xlsx'")
        return writer(records, self.export_dir)

    def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """Block until every pipeline of the current run has finished."""
        with self._run_lock:
            futures = list(self._futures)
        _, pending = wait(futures, timeout=timeout)
        return not pending

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_tasks)

    # ---------- Pipeline ----------

    def _run_task_safe(self, generation: int, task: TaskStatus, save_to_database: bool) -> None:
        try:
            self._run_task(generation, task, save_to_database)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Task %s failed (%s in %s): %s", task.id, task.category, task.location, exc)
            self.store.mark_failed(generation, task.id, str(exc))

    def _run_task(self, generation: int, task: TaskStatus, save_to_database: bool) -> None:
        if not self.store.mark_processing(generation, task.id):
            logger.info("Skipping task %s from a superseded search", task.id)
            return

        for record in self.places_client.search(task.category, task.location):
            record.category = task.category
            record.real_category = task.category
            self._enrich(record)

            if not self.store.record_item(generation, task.id, record):
                logger.info("Search superseded; stopping task %s", task.id)
                return

            if save_to_database and self.upsert is not None:
                try:
                    self.upsert(record)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Error saving business %s to database: %s", record.id, exc)

        self.store.mark_completed(generation, task.id)
        logger.info("Task completed: %s (%s in %s)", task.id, task.category, task.location)

    def _enrich(self, record: BusinessRecord) -> None:
        try:
            apply_details(record, self.places_client.details(record.id))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to fetch details for %s: %s", record.id, exc)

        if record.email or not record.website:
            return
        try:
            email = self.email_scraper.extract(record.website)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to extract email from website %s: %s", record.website, exc)
            return
        if email:
            logger.info("Extracted email %s for business %s", email, record.business_name)
            record.email = email
