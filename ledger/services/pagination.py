"""
Keyset cursors for newest-first listings.

A cursor is the (timestamp, id) of the last row a client has seen, wrapped
in URL-safe base64 so clients treat it as opaque. The next page is every
row strictly "older" than that pair:

    timestamp < :ts  OR  (timestamp = :ts AND id < :id)

Offsets shift when rows are inserted between page fetches; a keyset does
not, and the id tie-break makes rows with equal timestamps page cleanly.
"""

import base64
import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import and_, or_

from ledger.exceptions import LedgerValidationError


def as_utc(value: datetime) -> datetime:
    """Aware datetimes are shifted to UTC; naive ones are taken to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def encode_cursor(timestamp: datetime, row_id: uuid.UUID) -> str:
    raw = json.dumps({"ts": timestamp.isoformat(), "id": str(row_id)})
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, uuid.UUID]:
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode()))
        return as_utc(datetime.fromisoformat(data["ts"])), uuid.UUID(data["id"])
    except (ValueError, KeyError, TypeError) as exc:
        raise LedgerValidationError("Invalid pagination cursor") from exc


def older_than(timestamp_column, id_column, cursor: str):
    """SQL condition selecting rows after `cursor` in (timestamp, id) DESC order."""
    timestamp, row_id = decode_cursor(cursor)
    return or_(
        timestamp_column < timestamp,
        and_(timestamp_column == timestamp, id_column < row_id),
    )


def split_page(rows: list, limit: int, timestamp_attr: str) -> tuple[list, str | None]:
    """
    Trim a `limit + 1` fetch to one page and build the next cursor.

    The extra row only signals that another page exists; it is not returned.
    """
    has_more = len(rows) > limit
    page = rows[:limit]
    if not has_more or not page:
        return page, None
    last = page[-1]
    return page, encode_cursor(getattr(last, timestamp_attr), last.id)
