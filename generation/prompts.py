"""Prompt and filename builders for CSV-driven car renders.

Every function here is pure: the same row always yields the same prompt and
filename, no matter what was built before it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

ROW_FIELDS = ("make", "model", "body_style", "trim", "year", "color", "background", "aspect_ratio")
FILENAME_FIELDS = ("year", "make", "model", "body_style", "trim", "color", "background")

ASPECT_RATIOS = ("1:1", "16:9", "9:16", "3:4", "4:3")
DEFAULT_ASPECT_RATIO = "1:1"
_ASPECT_SEPARATORS_RE = re.compile(r"\s*[:/\-]\s*")
_ASPECT_ALIASES = {"square": "1:1"}

_PLACEHOLDER_RE = re.compile(r"{{(\w+)}}")
_WHITESPACE_RE = re.compile(r"\s+")
_filename_strip_re = re.compile(r"[^A-Za-z0-9._-]+")

PROMPT_TEMPLATES = {
    "white": (
        "Isolated render of a {{year}} {{make}} {{model}} {{body_style}} {{trim}} {{color}}, "
        "flat-field white (#FFFFFF) environment, reflections off, baked contact shadow 6 %, "
        "camera 35° front-left, vehicle nose points left. Post-process: auto-threshold background "
        "to #FFFFFF (tolerance 1 RGB), remove artefacts, keep 6 % shadow, run edge cleanup. "
        "Export high-resolution 8 k file without drawing any text, watermarks or badges; "
        'restrict "KAVAK" to licence plate only.'
    ),
    "hub": (
        "A hyper-realistic professional studio photograph of a {{year}} {{make}} {{model}} "
        "{{body_style}} {{trim}} in {{color}} paint with subtle micro-reflections. The vehicle is "
        "positioned at a precise 35-degree angle showing the front grille, headlights with signature "
        "lighting illuminated, and right side profile. Premium tinted windows reflect ambient studio "
        "lighting. The car sits on low-profile performance tires with detailed alloy wheels showing "
        "brake components behind the spokes. Shot on a polished circular dark charcoal gray studio "
        "floor that subtly reflects the vehicle's undercarriage and creates natural graduated shadows. "
        "Clean matte white seamless backdrop curves smoothly from floor to wall. Professional "
        "three-point lighting setup with key light, fill light, and rim lighting creates dimensional "
        "depth while preserving paint reflections and surface textures. Black front license plate "
        "features the 'kavak' logo in white. Camera positioned at chest height with slight downward "
        "angle. Sharp focus throughout with shallow depth of field on background edges. Commercial "
        "automotive photography quality with color-accurate rendering and professional retouching "
        "standards."
    ),
}


@dataclass(frozen=True)
class CarRow:
    """One CSV record describing a single render request."""

    make: Optional[str] = None
    model: Optional[str] = None
    body_style: Optional[str] = None
    trim: Optional[str] = None
    year: Optional[str] = None
    color: Optional[str] = None
    background: Optional[str] = None
    aspect_ratio: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CarRow":
        values = {}
        for name in ROW_FIELDS:
            raw = data.get(name)
            if raw is None:
                continue
            text = str(raw).strip()
            if text:
                values[name] = text
        return cls(**values)

    def get(self, name: str) -> str:
        return getattr(self, name, None) or ""

    def to_dict(self) -> dict:
        return {item.name: getattr(self, item.name) for item in fields(self) if getattr(self, item.name)}


def build_prompt(row: CarRow) -> str:
    template = PROMPT_TEMPLATES["hub"] if row.background == "hub" else PROMPT_TEMPLATES["white"]
    filled = _PLACEHOLDER_RE.sub(lambda match: row.get(match.group(1)), template)
    return _WHITESPACE_RE.sub(" ", filled).strip()


def _filename_part(value: str) -> str:
    collapsed = _WHITESPACE_RE.sub("_", value.strip())
    return _filename_strip_re.sub("", collapsed)


def make_filename(row: CarRow, index: int) -> str:
    """Build ``Year-Make-Model-...-<n>.png`` for the row at ``index``.

    The trailing ``index + 1`` keeps names unique within a job even when two
    rows carry identical attributes.
    """

    parts = [part for part in (_filename_part(row.get(name)) for name in FILENAME_FIELDS) if part]
    stem = "-".join(parts) if parts else f"car-{index}"
    return f"{stem}-{index + 1}.png"


def normalize_aspect_ratio(value: Optional[str], *, row_number: Optional[int] = None) -> str:
    """Canonicalize an aspect ratio such as ``4/3`` or ``16-9``.

    Unknown values fall back to ``1:1`` and are logged; they never fail a row.
    """

    text = (value or DEFAULT_ASPECT_RATIO).strip().lower()
    if not text:
        return DEFAULT_ASPECT_RATIO
    candidate = _ASPECT_ALIASES.get(text) or _ASPECT_SEPARATORS_RE.sub(":", text)
    if candidate in ASPECT_RATIOS:
        return candidate
    if row_number is not None:
        logger.warning('Invalid aspect_ratio "%s" for row %d, defaulting to "%s"', value, row_number, DEFAULT_ASPECT_RATIO)
    else:
        logger.warning('Invalid aspect_ratio "%s", defaulting to "%s"', value, DEFAULT_ASPECT_RATIO)
    return DEFAULT_ASPECT_RATIO
