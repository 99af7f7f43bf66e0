"""CSV file parser for bulk lead import."""
from __future__ import annotations

import csv
import io
from typing import Dict, List, Optional

from buyer_leads.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

# Column order shared by export and import
CSV_FIELDS = [
    "fullName",
    "email",
    "phone",
    "city",
    "propertyType",
    "bhk",
    "purpose",
    "budgetMin",
    "budgetMax",
    "timeline",
    "source",
    "notes",
    "tags",
    "status",
]


def parse_csv_rows(
    file_content: bytes,
    encoding: str = "utf-8-sig",
    delimiter: str = ",",
) -> List[Dict[str, Optional[str]]]:
    """
    Parse an import file into raw rows keyed by header name.

    Row 1 must be the header. Blank lines are skipped, cell values are
    stripped and empty cells become ``None``.
    """
    try:
        text_content = file_content.decode(encoding)
    except UnicodeDecodeError as e:
        logger.error("csv_parser.decode_error", encoding=encoding, error=str(e))
        raise ValueError(f"Failed to decode CSV file with encoding {encoding}") from e

    try:
        reader = csv.DictReader(io.StringIO(text_content), delimiter=delimiter)
        if not reader.fieldnames:
            raise ValueError("CSV file has no header row")

        rows = []
        for row in reader:
            cleaned = {
                k.strip(): (v.strip() or None) if isinstance(v, str) else None
                for k, v in row.items()
                if k and k.strip()
            }

            # Skip empty rows
            if not any(cleaned.values()):
                continue

            rows.append(cleaned)

    except csv.Error as e:
        logger.error("csv_parser.parse_error", error=str(e))
        raise ValueError(f"Failed to parse CSV file: {e}") from e

    logger.info("csv_parser.parsed", total_rows=len(rows), encoding=encoding)
    return rows
