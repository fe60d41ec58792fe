"""
Occurrence aggregation: pure functions over one invoice's occurrences.

Nothing here touches the database. The service fetches the full set of
occurrence rows for an invoice once per request (already joined with the
catalog columns `code_description`, `code_type` and `finalizadora`) and
hands that snapshot to these helpers.

Rows are plain dicts as returned by the repositories. The only keys this
module relies on are: `id`, `invoice_number`, `code`, `description`,
`event_at`, `sent_at`, `code_description`, `finalizadora`.

Ordering rule: newest first by `event_at`, using `sent_at` when the event
time is unknown; ties fall back to `sent_at` and then `id`. The first
element of the descending sequence is the latest occurrence and the last
element is the earliest, so both come from a single ordered list.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from errors import InvalidArgumentError

NO_OCCURRENCES = "Sem ocorrências"

PAGE_LIMIT_MIN = 1
PAGE_LIMIT_MAX = 100

Row = Dict[str, Any]
DedupKey = Tuple[int, int, datetime]


def normalize_timestamp(value: Optional[datetime], field: str) -> Optional[datetime]:
    """Require timezone info and convert to UTC. `None` passes through."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise InvalidArgumentError(f"{field} must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        raise InvalidArgumentError(
            f"{field} must include timezone info (e.g., 2025-01-01T10:00:00Z)"
        )
    return value.astimezone(timezone.utc)


def parse_code(value: Any) -> int:
    """Coerce an occurrence code given as int or numeric string."""
    if isinstance(value, bool):
        raise InvalidArgumentError(f"Invalid occurrence code: {value!r}")
    try:
        code = int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid occurrence code: {value!r}") from None
    if code <= 0 or (isinstance(value, float) and not value.is_integer()):
        raise InvalidArgumentError(f"Invalid occurrence code: {value!r}")
    return code


def dedup_key(invoice_number: int, code: int, event_at: Optional[datetime]) -> Optional[DedupKey]:
    """Natural key of an occurrence, or None when it cannot be deduplicated.

    Without an event time there is nothing to compare against, so such
    occurrences are always accepted. Equality is exact: events a
    millisecond apart are distinct.
    """
    if event_at is None:
        return None
    return (invoice_number, code, normalize_timestamp(event_at, "event_at"))


def _sort_key(row: Row) -> Tuple[datetime, datetime, int]:
    sent_at = row["sent_at"]
    event_at = row.get("event_at") or sent_at
    return (event_at, sent_at, row.get("id") or 0)


def sort_descending(rows: Sequence[Row]) -> List[Row]:
    """Most recent first."""
    return sorted(rows, key=_sort_key, reverse=True)


def first_and_last(ordered: Sequence[Row]) -> Tuple[Optional[Row], Optional[Row]]:
    """(earliest, latest) taken from a descending-ordered sequence."""
    if not ordered:
        return None, None
    return ordered[-1], ordered[0]


def group_by_code(ordered: Sequence[Row]) -> List[Dict[str, Any]]:
    """Count occurrences per code, in order of first appearance."""
    groups: Dict[int, Dict[str, Any]] = {}
    for row in ordered:
        code = row["code"]
        group = groups.get(code)
        if group is None:
            group = {
                "code": code,
                "description": row.get("code_description") or row.get("description"),
                "count": 0,
                "finalizadora": bool(row.get("finalizadora")),
            }
            groups[code] = group
        group["count"] += 1
    return list(groups.values())


def build_statistics(ordered: Sequence[Row]) -> Dict[str, Any]:
    """Summary of one invoice's occurrences.

    `ordered` must already be in descending order (see `sort_descending`).
    An empty set is a valid input and yields zero counts, no first/last
    occurrence and `NO_OCCURRENCES` as the status text.
    """
    first, last = first_and_last(ordered)
    if last is None:
        return {
            "total": 0,
            "first": None,
            "last": None,
            "currentStatusText": NO_OCCURRENCES,
            "isFinalized": False,
            "byCode": [],
            "timeline": [],
        }

    return {
        "total": len(ordered),
        "first": first,
        "last": last,
        "currentStatusText": last.get("description"),
        "isFinalized": bool(last.get("finalizadora")),
        "byCode": group_by_code(ordered),
        "timeline": list(reversed(ordered)),
    }


def check_page(page: int, limit: int, max_limit: int = PAGE_LIMIT_MAX) -> None:
    """Reject out-of-range paging arguments.

    `max_limit` may lower the ceiling but never raise it above
    `PAGE_LIMIT_MAX`.
    """
    max_limit = min(max_limit, PAGE_LIMIT_MAX)
    if page < 1:
        raise InvalidArgumentError("page must be greater than zero")
    if limit < PAGE_LIMIT_MIN or limit > max_limit:
        raise InvalidArgumentError(f"limit must be between {PAGE_LIMIT_MIN} and {max_limit}")


def page_info(page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit),
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }


def paginate(
    ordered: Sequence[Row],
    page: int = 1,
    limit: int = 20,
    max_limit: int = PAGE_LIMIT_MAX,
) -> Dict[str, Any]:
    """Slice an already-ordered set into one page plus pagination metadata."""
    check_page(page, limit, max_limit)

    offset = (page - 1) * limit
    return {
        "items": list(ordered[offset:offset + limit]),
        "pagination": page_info(page, limit, len(ordered)),
    }
