"""CSV and Excel writers for collected business records."""

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font

from business_extractor.models import BusinessRecord

logger = logging.getLogger(__name__)

EXPORT_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("Id", "id"),
    ("BusinessName", "business_name"),
    ("RealCategory", "real_category"),
    ("Category", "category"),
    ("Address", "address"),
    ("City", "city"),
    ("State", "state"),
    ("PostalCode", "postal_code"),
    ("Country", "country"),
    ("Phone", "phone"),
    ("Email", "email"),
    ("Website", "website"),
    ("Latitude", "latitude"),
    ("Longitude", "longitude"),
    ("MapsLink", "maps_link"),
    ("DetailsLink", "details_link"),
)
HEADERS: List[str] = [header for header, _ in EXPORT_COLUMNS]


def to_row(record: BusinessRecord) -> List[Any]:
    """One export row; missing values become empty strings."""
    row: List[Any] = []
    for _, attribute in EXPORT_COLUMNS:
        value = getattr(record, attribute)
        row.append("" if value is None else value)
    return row


def _export_path(directory: str, extension: str) -> Path:
    dir_path = Path(directory)
    dir_path.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return dir_path / f"business_export_{timestamp}.{extension}"


def export_to_csv(records: Iterable[BusinessRecord], directory: str) -> str:
    file_path = _export_path(directory, "csv")
    with file_path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh, quoting=csv.QUOTE_ALL)
        writer.writerow(HEADERS)
        for record in records:
            writer.writerow(to_row(record))
    logger.info("CSV export completed: %s", file_path)
    return str(file_path)


def _column_width(values: Sequence[Any]) -> int:
    return min(60, max(len(str(value)) for value in values) + 2)


def export_to_excel(records: Iterable[BusinessRecord], directory: str) -> str:
    file_path = _export_path(directory, "xlsx")
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Business Data"

    sheet.append(HEADERS)
    bold = Font(bold=True)
    for cell in sheet[1]:
        cell.font = bold

    columns: List[List[Any]] = [[header] for header in HEADERS]
    for record in records:
        row = to_row(record)
        sheet.append(row)
        for index, value in enumerate(row):
            columns[index].append(value)

    for index, values in enumerate(columns):
        letter = sheet.cell(row=1, column=index + 1).column_letter
        sheet.column_dimensions[letter].width = _column_width(values)

    workbook.save(file_path)
    logger.info("Excel export completed: %s", file_path)
    return str(file_path)
