"""Change-feed relevance policy.

Pure predicates only: no I/O and no view state. The view stores decide
which of these apply to them.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo

from pydantic import ValidationError

from deskdrop._time import local_day_bounds
from deskdrop.models._base import parse_timestamp
from deskdrop.models.change import ChangeEvent, ChangeType

_logger = logging.getLogger(__name__)


def event_created_at(event: ChangeEvent) -> datetime | None:
    """``created_at`` of the event's new row, if it carries a usable one."""
    if event.new is None:
        return None
    value = event.new.get("created_at")
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except (ValueError, TypeError, ValidationError):
        _logger.debug("Unparsable created_at %r in change event", value)
        return None


def is_relevant_to_day(event: ChangeEvent, day_start: datetime, day_end: datetime) -> bool:
    """Does *event* touch a row created in ``[day_start, day_end)``?

    Deletes carry only the row id, so they are always treated as relevant
    and the view reloads optimistically. Inserts and updates without a
    readable ``created_at`` are ignored.
    """
    if event.event_type is ChangeType.DELETE:
        return True
    created_at = event_created_at(event)
    if created_at is None:
        return False
    return day_start <= created_at < day_end


def is_relevant_today(event: ChangeEvent, now: datetime, zone: tzinfo | None = None) -> bool:
    start, end = local_day_bounds(now, zone)
    return is_relevant_to_day(event, start, end)
