"""HTTP entrypoint for starting searches and reading their results."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import psycopg2
from flask import Flask, jsonify, request, send_file

from business_extractor.core import db
from business_extractor.core.config import get_settings
from business_extractor.core.orchestrator import (
    ExportError,
    InvalidSearchRequest,
    TaskOrchestrator,
)
from business_extractor.models import SearchRequest

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & orchestrator ----------
app = Flask(__name__)
_orchestrator: Optional[TaskOrchestrator] = None
_orchestrator_lock = threading.Lock()

EXPORT_MIMETYPES = {
    ".csv": "text/csv",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
MAX_PAGE_SIZE = 200


def get_orchestrator() -> TaskOrchestrator:
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = TaskOrchestrator.from_settings()
        return _orchestrator


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Liveness only; never touches the database or the Places API."""
    return jsonify({"status": "ok"}), 200


def _string_list(payload: Dict[str, Any], name: str) -> Optional[List[str]]:
    value = payload.get(name)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        return None
    return value


@app.post("/api/search")
def start_search() -> Any:
    """
    Start a new search, replacing any previous results.
    Required JSON fields: categories (list of str), locations (list of str)
    Optional: save_to_database (bool)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    categories = _string_list(payload, "categories")
    locations = _string_list(payload, "locations")
    missing = [name for name, value in (("categories", categories), ("locations", locations)) if not value]
    if missing:
        return jsonify({"error": f"missing or invalid fields: {', '.join(missing)}"}), 400

    save_raw = payload.get("save_to_database")
    if save_raw is not None and not isinstance(save_raw, bool):
        return jsonify({"error": "save_to_database must be a boolean"}), 400

    search_request = SearchRequest(categories=categories, locations=locations, save_to_database=save_raw)
    logger.info(
        "Received search request with %d categories and %d locations", len(categories), len(locations)
    )
    try:
        token = get_orchestrator().initiate_search(search_request)
    except InvalidSearchRequest as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify({"data": {"token": token, "status": "queued"}}), 202


@app.get("/api/tasks")
def list_tasks() -> Any:
    tasks = get_orchestrator().get_task_statuses()
    return jsonify({"data": [task.to_dict() for task in tasks]}), 200


@app.get("/api/results")
def get_results() -> Any:
    return jsonify({"data": get_orchestrator().get_results().to_dict()}), 200


@app.post("/api/export")
def export_results() -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    export_format = str(payload.get("format") or "").strip().lower()
    logger.info("Exporting results as %s", export_format or "<missing>")

    try:
        file_path = get_orchestrator().export_results(export_format)
    except ExportError as exc:
        return jsonify({"error": str(exc)}), 400

    path = Path(file_path).resolve()
    mimetype = EXPORT_MIMETYPES.get(path.suffix, "application/octet-stream")
    return send_file(path, mimetype=mimetype, as_attachment=True, download_name=path.name)


def _optional_bool(raw: Optional[str]) -> Optional[bool]:
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered in {"1", "true", "yes"}:
        return True
    if lowered in {"0", "false", "no"}:
        return False
    raise ValueError("has_email must be a boolean")


@app.get("/api/businesses")
def list_stored_businesses() -> Any:
    """Page through persisted businesses with optional category/city/country/email filters."""
    try:
        page = int(request.args.get("page", "0"))
        size = int(request.args.get("size", "20"))
        has_email = _optional_bool(request.args.get("has_email"))
        if page < 0 or size <= 0:
            raise ValueError("page must be >= 0 and size must be positive")
        size = min(size, MAX_PAGE_SIZE)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        businesses = db.find_businesses(
            page,
            size,
            category=request.args.get("category") or None,
            city=request.args.get("city") or None,
            country=request.args.get("country") or None,
            has_email=has_email,
        )
    except (RuntimeError, psycopg2.Error) as exc:
        logger.exception("Failed to query stored businesses: %s", exc)
        return jsonify({"error": "database unavailable"}), 503

    return jsonify({"data": [business.to_dict() for business in businesses], "page": page, "size": size}), 200


def main() -> None:
    """Bind to PORT when the platform injects it, otherwise to the configured worker port."""
    env_port = os.getenv("PORT")
    logger.info("[BOOT] ENV PORT=%s", env_port)

    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)

    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
