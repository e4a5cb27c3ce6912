"""Ownership correlation for an unauthenticated device.

The only link between this device and "its" orders is the list of order
references it has placed, kept in local storage. Possessing a reference is
enough to claim the matching order; anyone who knows the code can do the
same. This is a known privacy limitation of the reference-based design,
not something this module tries to paper over.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, tzinfo

from pydantic import ValidationError

from deskdrop._constants import (
    LAST_ACTIVE_VIEW_KEY,
    OWNER_NAME_KEY,
    OWNER_PHONE_KEY,
    OWNERSHIP_CAP,
    OWNERSHIP_RECORDS_KEY,
)
from deskdrop._time import is_same_local_day, utcnow
from deskdrop.models.order import Order
from deskdrop.models.ownership import OwnershipRecord
from deskdrop.models.view import ViewKind
from deskdrop.session import OwnerSession
from deskdrop.storage import LocalStorage

_logger = logging.getLogger(__name__)


class OwnershipCorrelator:
    """Most-recent-first list of ownership records, persisted on every change."""

    def __init__(
        self,
        storage: LocalStorage,
        *,
        cap: int = OWNERSHIP_CAP,
        clock: Callable[[], datetime] = utcnow,
        zone: tzinfo | None = None,
    ) -> None:
        self._storage = storage
        self._cap = cap
        self._clock = clock
        self._zone = zone

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def records(self) -> list[OwnershipRecord]:
        """Load all records, newest first.

        Missing or corrupt storage reads as an empty list; individual
        malformed entries are skipped.
        """
        try:
            text = self._storage.get_item(OWNERSHIP_RECORDS_KEY)
        except Exception:
            _logger.warning("Ownership records unavailable; treating as empty", exc_info=True)
            return []
        if not text:
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            _logger.warning("Ownership records are not valid JSON; treating as empty")
            return []
        if not isinstance(payload, list):
            _logger.warning("Ownership records are not a JSON array; treating as empty")
            return []

        records: list[OwnershipRecord] = []
        for entry in payload:
            try:
                records.append(OwnershipRecord.model_validate(entry))
            except ValidationError:
                _logger.debug("Skipping malformed ownership record %r", entry)
        return records

    def _save(self, records: list[OwnershipRecord]) -> None:
        payload = [record.model_dump(mode="json", by_alias=True) for record in records]
        self._storage.set_item(OWNERSHIP_RECORDS_KEY, json.dumps(payload))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def record_ownership(self, reference: str, owner_name: str) -> OwnershipRecord:
        """Remember that this device placed *reference*.

        The new record goes first; anything beyond the cap is dropped from
        the old end.
        """
        record = OwnershipRecord(
            order_reference=reference,
            placed_at=self._clock(),
            owner_name=owner_name,
        )
        records = [record, *self.records()][: self._cap]
        self._save(records)
        _logger.debug("Recorded ownership of %s for %s (%d kept)", reference, owner_name, len(records))
        return record

    def owned_references(self, owner_name: str) -> list[str]:
        """References recorded under *owner_name*, newest first."""
        return [record.order_reference for record in self.records() if record.owner_name == owner_name]

    def record_for(self, reference: str) -> OwnershipRecord | None:
        for record in self.records():
            if record.order_reference == reference:
                return record
        return None

    def is_owned_today(self, record: OwnershipRecord) -> bool:
        """True when *record* was placed on the current local calendar day."""
        return is_same_local_day(record.placed_at, self._clock(), self._zone)

    def remove_ownership(self, reference: str) -> bool:
        """Forget *reference*. Returns ``False`` when it was not recorded."""
        records = self.records()
        remaining = [record for record in records if record.order_reference != reference]
        if len(remaining) == len(records):
            return False
        self._save(remaining)
        return True

    def partition_by_day(self, orders: Iterable[Order], owner_name: str) -> tuple[list[Order], list[Order]]:
        """Split this owner's orders into (today, past).

        Membership and the day bucket both come from the ownership record,
        not from the order row. Each bucket is newest ``created_at`` first.
        """
        by_reference: dict[str, OwnershipRecord] = {}
        for record in self.records():
            if record.owner_name == owner_name:
                by_reference.setdefault(record.order_reference, record)

        today: list[Order] = []
        past: list[Order] = []
        for order in orders:
            record = by_reference.get(order.order_reference)
            if record is None:
                continue
            (today if self.is_owned_today(record) else past).append(order)

        today.sort(key=lambda order: order.created_at, reverse=True)
        past.sort(key=lambda order: order.created_at, reverse=True)
        return today, past


class DeviceProfileStore:
    """Owner identity and UI preferences kept alongside ownership records."""

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage

    def load_session(self) -> OwnerSession:
        try:
            name = self._storage.get_item(OWNER_NAME_KEY) or ""
            phone = self._storage.get_item(OWNER_PHONE_KEY) or ""
        except Exception:
            _logger.warning("Owner identity unavailable; continuing anonymously", exc_info=True)
            return OwnerSession()
        return OwnerSession(owner_name=name, owner_phone=phone)

    def save_session(self, session: OwnerSession) -> None:
        self._storage.set_item(OWNER_NAME_KEY, session.owner_name)
        self._storage.set_item(OWNER_PHONE_KEY, session.owner_phone)

    def last_active_view(self) -> ViewKind | None:
        try:
            value = self._storage.get_item(LAST_ACTIVE_VIEW_KEY)
        except Exception:
            _logger.warning("Last active view unavailable", exc_info=True)
            return None
        if not value:
            return None
        try:
            return ViewKind(value)
        except ValueError:
            _logger.debug("Ignoring unknown last active view %r", value)
            return None

    def set_last_active_view(self, kind: ViewKind) -> None:
        self._storage.set_item(LAST_ACTIVE_VIEW_KEY, kind.value)
