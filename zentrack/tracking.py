"""
Tracked auctions: the record model, the immutable collection that holds
them, and the ``Tracker`` that runs fetch -> normalize -> localize -> merge.

The collection is never mutated in place. Every writer swaps
``Tracker.snapshot`` for a new ``TrackedCollection``, so anything holding
the previous snapshot keeps a consistent view.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from zentrack import currency as fx
from zentrack.core import (
    ListingSite,
    LocalizeError,
    NOT_AVAILABLE,
    RawFields,
    ValidationError,
    ZentrackError,
)
from zentrack.translate import check_language

log = logging.getLogger("zentrack.tracking")

_INT_RE = re.compile(r"\d+")


class TrackedRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    source_url: str
    display_name: str = "Loading..."
    source_title: Optional[str] = None
    price_minor: int = 0
    price_display: str = ""
    bid_count: Optional[int] = None
    time_remaining: str = NOT_AVAILABLE
    image_ref: Optional[str] = None
    pending: bool = True
    last_updated: Optional[datetime] = None


def new_record(url: str) -> TrackedRecord:
    return TrackedRecord(id=uuid.uuid4().hex, source_url=url)


def parse_bid_count(text: str) -> Optional[int]:
    m = _INT_RE.search((text or "").replace(",", ""))
    return int(m.group(0)) if m else None


class TrackedCollection:
    """Ordered, immutable set of records keyed by id."""

    __slots__ = ("_records",)

    def __init__(self, records: Iterable[TrackedRecord] = ()):
        records = tuple(records)
        ids = [r.id for r in records]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate record id in collection")
        self._records = records

    def __iter__(self) -> Iterator[TrackedRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return any(r.id == record_id for r in self._records)

    def get(self, record_id: str) -> Optional[TrackedRecord]:
        return next((r for r in self._records if r.id == record_id), None)

    def add(self, record: TrackedRecord) -> "TrackedCollection":
        return TrackedCollection(self._records + (record,))

    def remove(self, record_id: str) -> "TrackedCollection":
        return TrackedCollection(r for r in self._records if r.id != record_id)

    def replace(self, record: TrackedRecord) -> "TrackedCollection":
        """Swap the record with the same id; unknown ids leave the collection as is."""
        if record.id not in self:
            return self
        return TrackedCollection(record if r.id == record.id else r for r in self._records)


class Localizer(Protocol):
    async def localize(self, text: str, target_language: str) -> str: ...


class RecordStore(Protocol):
    def save(self, record: TrackedRecord) -> None: ...

    def delete(self, record_id: str) -> None: ...


async def localize_or_keep(localizer: Localizer, text: str, language: str) -> str:
    try:
        return await localizer.localize(text, language)
    except LocalizeError as exc:
        log.debug("Keeping untranslated name %r: %s", text, exc)
        return text


async def merge(
    existing: TrackedRecord,
    fresh: RawFields,
    currency: str,
    language: str,
    localizer: Localizer,
) -> TrackedRecord:
    """Fold a fresh fetch into ``existing``. ``id`` and ``source_url`` never change."""
    return existing.model_copy(
        update={
            "display_name": await localize_or_keep(localizer, fresh.title, language),
            "source_title": fresh.title,
            "price_minor": fresh.price_minor,
            "price_display": fx.normalize(fresh.price_minor, currency),
            "bid_count": parse_bid_count(fresh.bid_count_text),
            "time_remaining": fresh.time_remaining_text,
            "image_ref": fresh.image_url,
            "pending": False,
            "last_updated": datetime.now(timezone.utc),
        }
    )


class Tracker:
    """One user's tracked auctions."""

    def __init__(
        self,
        site: ListingSite,
        localizer: Localizer,
        *,
        currency: str = fx.BASE_CURRENCY,
        language: str = "en",
        store: Optional[RecordStore] = None,
    ):
        self.site = site
        self.localizer = localizer
        self.currency = _check_currency(currency)
        self.language = check_language(language)
        self.store = store
        self.snapshot = TrackedCollection()
        self._in_flight: set[str] = set()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def load(self, records: Iterable[TrackedRecord]) -> None:
        self.snapshot = TrackedCollection(records)

    # ---------------- user actions ---------------- #

    async def submit(self, url: str) -> Optional[TrackedRecord]:
        """Track ``url``. Any error is re-raised after dropping the placeholder.

        Returns ``None`` when the record was deleted while its first fetch ran.
        """
        url = self.site.validate_url(url)
        placeholder = new_record(url)
        self.snapshot = self.snapshot.add(placeholder)
        self._in_flight.add(placeholder.id)
        try:
            try:
                fresh = await self.site.fetch(url)
                merged = await merge(placeholder, fresh, self.currency, self.language, self.localizer)
            except BaseException:
                # no pending record survives a failed first fetch
                self.snapshot = self.snapshot.remove(placeholder.id)
                raise
            return self._commit(merged)
        finally:
            self._in_flight.discard(placeholder.id)

    def delete(self, record_id: str) -> bool:
        if record_id not in self.snapshot:
            return False
        self.snapshot = self.snapshot.remove(record_id)
        if self.store is not None:
            self.store.delete(record_id)
        return True

    # ---------------- refresh ---------------- #

    async def refresh_all(self) -> int:
        """Re-fetch every non-pending record that is not already being fetched."""
        targets = [r for r in self.snapshot if not r.pending and r.id not in self._in_flight]
        if not targets:
            return 0
        self._in_flight.update(r.id for r in targets)
        results = await asyncio.gather(
            *(self._refresh_one(r) for r in targets), return_exceptions=True
        )
        updated = 0
        for record, res in zip(targets, results):
            if isinstance(res, BaseException):
                log.error("Unexpected error refreshing %s: %r", record.source_url, res)
            elif res is not None:
                updated += 1
        log.info("Refreshed %d/%d tracked auctions", updated, len(targets))
        return updated

    async def _refresh_one(self, record: TrackedRecord) -> Optional[TrackedRecord]:
        try:
            try:
                fresh = await self.site.fetch(record.source_url)
            except ZentrackError as exc:
                log.warning("%s failed: %s", record.source_url, exc)
                return None
            merged = await merge(record, fresh, self.currency, self.language, self.localizer)
            return self._commit(merged)
        finally:
            self._in_flight.discard(record.id)

    # ---------------- preferences ---------------- #

    def set_currency(self, currency: str) -> None:
        self.currency = _check_currency(currency)
        self.snapshot = TrackedCollection(
            r if r.pending else r.model_copy(update={"price_display": fx.normalize(r.price_minor, currency)})
            for r in self.snapshot
        )

    async def set_language(self, language: str) -> int:
        """Re-localize every non-pending record's name. Returns how many were updated."""
        self.language = check_language(language)
        targets = [r for r in self.snapshot if not r.pending]
        names = await asyncio.gather(
            *(
                localize_or_keep(self.localizer, r.source_title or r.display_name, language)
                for r in targets
            )
        )
        updated = 0
        for record, name in zip(targets, names):
            current = self.snapshot.get(record.id)
            # gone, or refreshed under a new title while we were translating
            if current is None or current.source_title != record.source_title:
                continue
            self.snapshot = self.snapshot.replace(current.model_copy(update={"display_name": name}))
            updated += 1
        return updated

    def _commit(self, merged: TrackedRecord) -> Optional[TrackedRecord]:
        if merged.id not in self.snapshot:
            log.info("Dropping fetch result for removed record %s", merged.id)
            return None
        self.snapshot = self.snapshot.replace(merged)
        if self.store is not None:
            self.store.save(merged)
        return merged


def _check_currency(code: str) -> str:
    if not fx.is_supported(code):
        raise ValidationError(f"Unsupported currency: {code!r}")
    return code
