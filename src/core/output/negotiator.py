"""
Response Cache Negotiator
=========================

HTTP cache validation for a selected diagram: etag and last-modified checks
against the client's validators and the cache headers of fresh responses.
"""

from typing import List, Optional, Tuple
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
import re

from src.models.schemas import Selection

MAX_AGE = 3600 * 24 * 5

# diagrams whose output changes without a change of their source
VOLATILE_DIAGRAMS = (
    "version",
    "license",
    "licence",
    "author",
    "checkversion",
    "testdot",
    "sudoku",
    "stdlib",
)
_VOLATILE_RE = re.compile(
    r"^\s*(?:@start\w*\s*\n\s*)?(?:" + "|".join(VOLATILE_DIAGRAMS) + r")\b", re.IGNORECASE
)
_REMOTE_INCLUDE_RE = re.compile(
    r"^\s*!(?:includeurl\b|include(?:_many|_once)?\s+<?https?://)", re.IGNORECASE | re.MULTILINE
)

Header = Tuple[str, str]


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP date header, None when absent or malformed."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def http_date(value: datetime) -> str:
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def is_not_modified(
    selection: Selection,
    if_none_match: Optional[str],
    if_modified_since: Optional[datetime],
) -> bool:
    """
    Whether the client's cached copy of the selection is still valid.

    Both validators must be present: If-Modified-Since equal to the unit's
    last-modified time and If-None-Match containing its etag.
    """
    if if_none_match is None or if_modified_since is None:
        return False
    if if_modified_since != selection.unit.last_modified:
        return False
    return selection.unit.etag in if_none_match


def is_cacheable(text: str) -> bool:
    """Sources with volatile output or remote includes are never cached."""
    normalized = text.replace("\r\n", "\n")
    if _VOLATILE_RE.match(normalized):
        return False
    return _REMOTE_INCLUDE_RE.search(normalized) is None


def cache_headers(
    selection: Selection,
    powered_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Header]:
    """Headers letting clients cache a diagram for five days."""
    now = now or datetime.now(timezone.utc)
    unit = selection.unit

    headers: List[Header] = [
        ("Expires", http_date(now + timedelta(seconds=MAX_AGE))),
        ("Date", http_date(now)),
        ("Last-Modified", http_date(unit.last_modified)),
        ("Cache-Control", f"public, max-age={MAX_AGE}"),
        ("Etag", f'"{unit.etag}"'),
        ("X-PlantUML-Diagram-Description", unit.description),
    ]
    for error in unit.errors:
        headers.append(("X-PlantUML-Diagram-Error", error.message))
        headers.append(("X-PlantUML-Diagram-Error-Line", str(error.line)))
    if powered_by:
        headers.append(("X-Powered-By", powered_by))
    return headers
