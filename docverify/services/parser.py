"""
Compliance document field extraction: deterministic regex parser.

Works on the raw text produced by PDF text extraction or OCR, so it makes no
assumptions about layout: every field is found by an anchor keyword
("Policy Number", "Insurer", "Expiration Date", ...) followed by a value.

Nothing here performs I/O; :func:`extract_fields` is a pure function of its
input text.
"""


import logging
import re
from datetime import date, datetime

from dateutil import parser as date_parser

from docverify.core.config import settings
from docverify.schemas.verification import ExtractedFields

logger = logging.getLogger(__name__)

__all__ = [
    "extract_fields",
    "parse_date",
    "sanitize_text",
    "sanitize_policy_number",
    "detect_coverage",
]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _clean(val: str | None) -> str:
    """Strip and collapse whitespace; return empty string for None."""
    if not val:
        return ""
    return re.sub(r"\s+", " ", val).strip()

def sanitize_text(value: str | None) -> str | None:
    """Collapse whitespace; drop values of two characters or fewer."""
    cleaned = _clean(value)
    return cleaned if len(cleaned) > 2 else None

def sanitize_policy_number(
    value: str | None, min_length: int | None = None,
) -> str | None:
    """Uppercase and keep only ``[A-Z0-9-]``; drop values that end up too short."""
    if not value or not isinstance(value, str):
        return None
    cleaned = re.sub(r"[^A-Z0-9\-]", "", value.upper())
    minimum = settings.policy_number_min_length if min_length is None else min_length
    return cleaned if len(cleaned) >= minimum else None

_ORDINAL_RE = re.compile(r"(?<=\d)(st|nd|rd|th)\b", re.IGNORECASE)
_NUMERIC_DATE_RE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})")
# Missing date parts resolve to January and the first, never to today.
_DATE_DEFAULT = datetime(2000, 1, 1)

def parse_date(raw: str | None) -> date | None:
    """Parse a free-form date string; return ``None`` instead of raising.

    Native parsing (dateutil, month-first) is tried first.  When that fails a
    numeric ``MM/DD/YY[YY]`` pattern is searched for, with two-digit years
    mapped to 19xx above 80 and 20xx otherwise.
    """
    if not raw or not isinstance(raw, str):
        return None
    cleaned = _clean(_ORDINAL_RE.sub("", raw))
    if not cleaned:
        return None

    try:
        return date_parser.parse(cleaned, dayfirst=False, default=_DATE_DEFAULT).date()
    except (ValueError, OverflowError):
        pass

    m = _NUMERIC_DATE_RE.search(cleaned)
    if m:
        month, day, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if year < 100:
            year += 1900 if year > 80 else 2000
        try:
            return date(year, month, day)
        except ValueError:
            return None
    return None

# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------

# Lower-case keyword → display label
COVERAGE_KEYWORDS: list[tuple[str, str]] = [
    ("general liability", "General Liability"),
    ("workers compensation", "Workers Compensation"),
    ("worker's compensation", "Workers Compensation"),
    ("commercial auto", "Commercial Auto"),
    ("umbrella", "Umbrella"),
    ("bond", "Bond"),
    ("professional liability", "Professional Liability"),
    ("errors and omissions", "Errors & Omissions"),
]

def detect_coverage(text: str) -> list[str]:
    """Return the unique coverage labels whose keyword occurs in *text*."""
    lower = text.lower()
    labels: list[str] = []
    for keyword, label in COVERAGE_KEYWORDS:
        if keyword in lower and label not in labels:
            labels.append(label)
    return labels

# ---------------------------------------------------------------------------
# Field patterns
# ---------------------------------------------------------------------------

_FIELD_STOP = r"(?=\s+(?:policy|coverage|effective|expiration|exp|limits)\b|\s*$)"

_POLICY_RE = re.compile(
    r"policy\s*(?:number|no\.?)\s*[:#]?\s*([A-Z0-9\-]+)", re.IGNORECASE
)
_ISSUER_RES = [
    re.compile(
        r"(?:insurer|issuer|carrier|company)\s*[:\-]?\s*([A-Za-z0-9&.,' -]{3,}?)" + _FIELD_STOP,
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:produced by|produced for)\s*[:\-]?\s*([A-Za-z0-9&.,' -]{3,}?)" + _FIELD_STOP,
        re.IGNORECASE,
    ),
]
_EFFECTIVE_FROM_RES = [
    re.compile(
        r"(?:effective\s*(?:date|from)|issue\s*date)\s*[:#]?\s*([A-Za-z0-9/,\-\s]{4,30})",
        re.IGNORECASE,
    ),
]
_EFFECTIVE_TO_RES = [
    re.compile(
        r"(?:expiration|expiry|expires|exp\.?)\s*(?:date|on)?\s*[:#]?\s*([A-Za-z0-9/,\-\s]{4,30})",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:effective\s*(?:to|through))\s*[:#]?\s*([A-Za-z0-9/,\-\s]{4,30})",
        re.IGNORECASE,
    ),
]

# Date captures are greedy; cut them where the next label starts.
_NEXT_LABEL_RE = re.compile(
    r"\b(?:policy|coverage|effective|expiration|expiry|expires|exp|limits|issue|"
    r"insurer|issuer|carrier|company|certificate|date)\b",
    re.IGNORECASE,
)

def _first_match(patterns: list[re.Pattern], text: str) -> str | None:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            return m.group(1)
    return None

def _clip_date_capture(raw: str | None) -> str | None:
    if not raw:
        return None
    m = _NEXT_LABEL_RE.search(raw)
    clipped = raw[:m.start()] if m else raw
    return clipped.strip(" ,-\n\t") or None

# ---------------------------------------------------------------------------
# Main parse function
# ---------------------------------------------------------------------------

def extract_fields(text: str) -> ExtractedFields:
    """Extract issuer, policy number, effective dates and coverage from raw text."""
    if not text or not text.strip():
        return ExtractedFields()

    policy_match = _POLICY_RE.search(text)
    issuer = sanitize_text(_first_match(_ISSUER_RES, text))
    policy_number = sanitize_policy_number(policy_match.group(1) if policy_match else None)
    effective_from = parse_date(_clip_date_capture(_first_match(_EFFECTIVE_FROM_RES, text)))
    effective_to = parse_date(_clip_date_capture(_first_match(_EFFECTIVE_TO_RES, text)))
    coverage = detect_coverage(text)

    logger.debug(
        "Regex extraction: issuer=%s policy=%s from=%s to=%s coverage=%s",
        issuer, policy_number, effective_from, effective_to, coverage,
    )

    return ExtractedFields(
        issuer=issuer,
        policy_number=policy_number,
        effective_from=effective_from,
        effective_to=effective_to,
        coverage=coverage,
    )
