"""
Helpers shared by the v1 routers: error translation and query parsing.
"""

from typing import Iterable, List, Optional, Tuple

from fastapi import HTTPException

from monitor_api.core.exceptions import APIError, DatabaseError
from monitor_api.services.job_grouping import DEFAULT_PAGE_SIZE, UNKNOWN_CARD_COUNT

MAX_PAGE_SIZE = 100
UNKNOWN_CARD_COUNT_PARAM = "unknown"


def http_error(exc: APIError, not_found: Optional[str] = None) -> HTTPException:
    """
    Translate a service error into an HTTPException.

    Args:
        exc: Service error
        not_found: Message to use instead of the service's for 404s
    """
    if isinstance(exc, DatabaseError):
        return HTTPException(status_code=exc.status_code, detail=f"Database error: {exc.message}")
    if exc.status_code == 404 and not_found:
        return HTTPException(status_code=404, detail=not_found)
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def merge_values(*groups: Optional[Iterable[str]]) -> List[str]:
    """Concatenate repeated query values, splitting comma lists and dropping blanks and duplicates."""
    values: List[str] = []
    for group in groups:
        for raw in group or ():
            for value in raw.split(","):
                value = value.strip()
                if value and value not in values:
                    values.append(value)
    return values


def parse_card_counts(values: Iterable[str]) -> List[int]:
    """``unknown`` maps to 0; values that are not integers are ignored."""
    counts = []
    for value in values:
        if value == UNKNOWN_CARD_COUNT_PARAM:
            counts.append(UNKNOWN_CARD_COUNT)
            continue
        try:
            counts.append(int(value))
        except ValueError:
            continue
    return counts


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse_page(page: Optional[str], page_size: Optional[str]) -> Tuple[int, int]:
    """
    Lenient paging: malformed or non-positive values fall back to defaults
    and ``page_size`` is capped.
    """
    page_number = _parse_int(page)
    size = _parse_int(page_size)
    if page_number is None or page_number < 1:
        page_number = 1
    if size is None or size < 1:
        size = DEFAULT_PAGE_SIZE
    return page_number, min(size, MAX_PAGE_SIZE)
