from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable


def unique_filename(existing: Iterable[str], desired: str) -> str:
    base = Path(desired)
    stem = base.stem
    suffix = base.suffix
    candidate = desired
    counter = 1
    existing_set = set(existing)
    while candidate in existing_set:
        candidate = f"{stem}_{counter}{suffix}"
        counter += 1
    return candidate


def compact_timestamp(moment: datetime) -> str:
    """Format as ``YYYYMMDDHHMMSS``."""
    return moment.strftime("%Y%m%d%H%M%S")
