"""Parse and validate uploaded batch CSV files."""

from __future__ import annotations

import csv
import io
import logging
import re
from typing import Any, Dict, List, Optional

from generation import CarRow

logger = logging.getLogger(__name__)

MAX_BATCH_ROWS = 50
HEADER_ALIASES = {
    "aspect": "aspect_ratio",
    "aspectratio": "aspect_ratio",
    "body": "body_style",
    "bodystyle": "body_style",
    "bg": "background",
}
_whitespace_re = re.compile(r"\s+")


class CsvValidationError(ValueError):
    """Raised when an uploaded CSV cannot be turned into batch rows."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


def normalize_header(header: str) -> str:
    normalized = _whitespace_re.sub("_", header.strip().lower())
    return HEADER_ALIASES.get(normalized, normalized)


def _read_records(text: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    try:
        return [record for record in reader if any(cell.strip() for cell in record)]
    except csv.Error as exc:
        raise CsvValidationError("Malformed CSV", [{"type": "Quotes", "message": str(exc), "row": reader.line_num}]) from exc


def parse_batch_csv(text: str, max_rows: int = MAX_BATCH_ROWS) -> List[CarRow]:
    """Turn CSV text into rows, rejecting anything the batch endpoint must refuse.

    Raises
    ------
    CsvValidationError
        For too few records, mismatched field counts, or too many rows.
    """

    records = _read_records(text.lstrip("\ufeff"))
    if len(records) < 2:
        raise CsvValidationError("CSV must have at least two rows (header + data)")

    headers = [normalize_header(header) for header in records[0]]
    logger.debug("Normalized CSV headers: %s", headers)

    errors: List[Dict[str, Any]] = []
    mappings: List[Dict[str, str]] = []
    for number, record in enumerate(records[1:], start=1):
        if len(record) != len(headers):
            kind = "TooManyFields" if len(record) > len(headers) else "TooFewFields"
            errors.append(
                {
                    "type": kind,
                    "message": f"Expected {len(headers)} fields but parsed {len(record)}",
                    "row": number,
                }
            )
            continue
        mappings.append(dict(zip(headers, record)))

    if errors:
        logger.warning("CSV parsing errors: %s", errors)
        raise CsvValidationError("Malformed CSV", errors)
    if len(mappings) > max_rows:
        raise CsvValidationError(f"Row limit exceeded ({max_rows} max)")

    return [CarRow.from_mapping(mapping) for mapping in mappings]
