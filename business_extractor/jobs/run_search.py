"""CLI job that runs one search to completion and optionally exports the results."""

import argparse
import logging
from typing import List, Optional

from business_extractor.core.config import ConfigError, get_settings
from business_extractor.core.orchestrator import InvalidSearchRequest, TaskOrchestrator
from business_extractor.models import SearchRequest, TaskState

logger = logging.getLogger(__name__)


def run_search_job(
    *,
    categories: List[str],
    locations: List[str],
    save_to_database: Optional[bool],
    export_format: Optional[str],
    orchestrator: Optional[TaskOrchestrator] = None,
) -> Optional[str]:
    """Run the search, wait for every task, and return the export path if one was written."""
    settings = get_settings()
    if not settings.google_api_key:
        raise ConfigError("GOOGLE_API_KEY is required")

    orchestrator = orchestrator or TaskOrchestrator.from_settings(settings)
    try:
        token = orchestrator.initiate_search(
            SearchRequest(categories=categories, locations=locations, save_to_database=save_to_database)
        )
        logger.info("Started search token=%s", token)
        orchestrator.wait_for_completion()

        tasks = orchestrator.get_task_statuses()
        failed = [task for task in tasks if task.status == TaskState.FAILED]
        for task in failed:
            logger.warning("Task %s (%s in %s) failed: %s", task.id, task.category, task.location, task.message)

        results = orchestrator.get_results()
        logger.info(
            "Completed run: tasks=%d failed=%d businesses=%d", len(tasks), len(failed), results.total
        )

        if export_format and results.total:
            path = orchestrator.export_results(export_format)
            logger.info("Exported %d businesses to %s", results.total, path)
            return path
        if export_format:
            logger.warning("No businesses found; skipping %s export", export_format)
        return None
    finally:
        orchestrator.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search Google Places for businesses and enrich them")
    parser.add_argument(
        "--category", dest="categories", action="append", required=True, help="Business category (repeatable)"
    )
    parser.add_argument(
        "--location",
        dest="locations",
        action="append",
        required=True,
        help="City or country to search (repeatable); known countries expand into their cities",
    )
    save_group = parser.add_mutually_exclusive_group()
    save_group.add_argument(
        "--save", dest="save_to_database", action="store_true", default=None, help="Upsert results into the database"
    )
    save_group.add_argument(
        "--no-save", dest="save_to_database", action="store_false", help="Do not persist results"
    )
    parser.add_argument("--export", dest="export_format", choices=("csv", "xlsx"), help="Export results when done")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    try:
        run_search_job(
            categories=args.categories,
            locations=args.locations,
            save_to_database=args.save_to_database,
            export_format=args.export_format,
        )
    except (ConfigError, InvalidSearchRequest) as exc:
        logger.error("Invalid search job: %s", exc)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()
