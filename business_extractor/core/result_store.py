"""Lock-guarded registry of task statuses and collected business records.

Every mutation is tagged with the run generation it belongs to. ``reset()``
starts a new generation, so pipelines still running for a superseded search
cannot leak their records or progress into the new one. Readers only ever
receive copies.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional

from business_extractor.etl.transform import merge_records
from business_extractor.models import BusinessRecord, SearchResults, TaskState, TaskStatus

logger = logging.getLogger(__name__)


class ResultStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._task_ids = itertools.count(1)
        self._tasks: Dict[str, TaskStatus] = {}
        self._records: Dict[str, BusinessRecord] = {}

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def reset(self) -> int:
        """Drop all tasks and records and return the new run generation."""
        with self._lock:
            self._generation += 1
            self._tasks = {}
            self._records = {}
            logger.debug("Result store reset to generation %d", self._generation)
            return self._generation

    def add_task(self, generation: int, category: str, location: str) -> Optional[TaskStatus]:
        with self._lock:
            if generation != self._generation:
                return None
            task = TaskStatus(id=str(next(self._task_ids)), category=category, location=location)
            self._tasks[task.id] = task
            return replace(task)

    def _live_task(self, generation: int, task_id: str) -> Optional[TaskStatus]:
        if generation != self._generation:
            return None
        return self._tasks.get(task_id)

    def mark_processing(self, generation: int, task_id: str) -> bool:
        with self._lock:
            task = self._live_task(generation, task_id)
            if task is None or task.status.is_terminal:
                return False
            task.status = TaskState.PROCESSING
            return True

    def mark_completed(self, generation: int, task_id: str) -> bool:
        with self._lock:
            task = self._live_task(generation, task_id)
            if task is None or task.status.is_terminal:
                return False
            task.total_items = task.processed_items
            task.status = TaskState.COMPLETED
            return True

    def mark_failed(self, generation: int, task_id: str, message: str) -> bool:
        with self._lock:
            task = self._live_task(generation, task_id)
            if task is None or task.status.is_terminal:
                return False
            task.status = TaskState.FAILED
            task.message = message
            return True

    def record_item(self, generation: int, task_id: str, record: BusinessRecord) -> bool:
        """Add ``record`` to the result set and count it against its task.

        A record whose id is already present is merged into the stored one
        rather than added twice.
        """
        with self._lock:
            task = self._live_task(generation, task_id)
            if task is None or task.status.is_terminal:
                logger.debug("Dropping record %s for stale task %s", record.id, task_id)
                return False
            stored = self._records.get(record.id)
            if stored is None:
                self._records[record.id] = replace(record)
            else:
                merge_records(stored, record)
            task.processed_items += 1
            return True

    def snapshot_tasks(self) -> List[TaskStatus]:
        with self._lock:
            return [replace(task) for task in self._tasks.values()]

    def snapshot_records(self) -> List[BusinessRecord]:
        with self._lock:
            return [replace(record) for record in self._records.values()]

    def snapshot_results(self) -> SearchResults:
        with self._lock:
            businesses = [replace(record) for record in self._records.values()]
            all_done = all(task.status.is_terminal for task in self._tasks.values())
        return SearchResults(
            businesses=businesses,
            total=len(businesses),
            status=TaskState.COMPLETED if all_done else TaskState.PROCESSING,
        )
