# zentrack/web/tracker_bridge.py
from __future__ import annotations
import asyncio, base64, logging
from typing import Callable, Dict, Optional

from zentrack import db as core_db
from zentrack.core import ListingSite
from zentrack.fetchers.zenmarket import ZenmarketAuction
from zentrack.scheduler import RefreshScheduler, get_scheduler, shutdown_scheduler
from zentrack.settings import Settings, load_settings
from zentrack.tracking import Tracker
from zentrack.translate import Translator

log = logging.getLogger("zentrack.web.trackers")

# Overridable in tests.
site_factory: Callable[[Settings], ListingSite] = ZenmarketAuction.from_settings

# key = user_id, value = {"tracker": Tracker, "refresher": RefreshScheduler, "initial": Task}
_TRACKERS: Dict[str, dict] = {}
_TRANSLATOR: Optional[Translator] = None


def _job_id(user_id: str) -> str:
    b = base64.urlsafe_b64encode(user_id.encode()).decode().rstrip("=")
    return f"refresh:{b}"


def translator() -> Translator:
    global _TRANSLATOR
    if _TRANSLATOR is None:
        _TRANSLATOR = Translator.from_settings(load_settings())
    return _TRANSLATOR


async def ensure_scheduler_started():
    sched = get_scheduler()
    if not sched.running:
        sched.start()
        log.info("APScheduler started")


async def get_entry(user_id: str) -> dict:
    """Tracker + scheduler for ``user_id``, loading the stored collection on first use."""
    entry = _TRACKERS.get(user_id)
    if entry is not None:
        return entry

    settings = load_settings()
    prefs = core_db.preferences_get(user_id)
    tracker = Tracker(
        site_factory(settings),
        translator(),
        currency=prefs.preferred_currency,
        language=prefs.preferred_language,
        store=core_db.AuctionStore(user_id),
    )
    tracker.load(
        core_db.auction_to_record(row, prefs.preferred_currency)
        for row in core_db.auctions_for(user_id)
    )
    refresher = RefreshScheduler(
        tracker,
        job_id=_job_id(user_id),
        interval_minutes=prefs.refresh_interval,
        enabled=prefs.auto_refresh,
    )
    refresher.start()
    entry = {"tracker": tracker, "refresher": refresher, "initial": None}
    _TRACKERS[user_id] = entry
    log.info("Loaded %d tracked auctions for %s", len(tracker.snapshot), user_id)

    if len(tracker.snapshot):
        # eager refresh after the initial load; don't hold up the request
        entry["initial"] = asyncio.create_task(refresher.run_cycle())
    return entry


async def get_tracker(user_id: str) -> Tracker:
    return (await get_entry(user_id))["tracker"]


async def apply_preferences(user_id: str, prefs: core_db.Preference) -> None:
    """Push stored preferences into the live tracker and its timer."""
    entry = await get_entry(user_id)
    tracker: Tracker = entry["tracker"]
    refresher: RefreshScheduler = entry["refresher"]
    if prefs.preferred_currency != tracker.currency:
        tracker.set_currency(prefs.preferred_currency)
    if prefs.preferred_language != tracker.language:
        n = await tracker.set_language(prefs.preferred_language)
        log.info("Re-localized %d auctions for %s", n, user_id)
    if (prefs.auto_refresh, prefs.refresh_interval) != (refresher.enabled, refresher.interval_minutes):
        refresher.configure(enabled=prefs.auto_refresh, interval_minutes=prefs.refresh_interval)


def reset() -> None:
    """Forget every live tracker and stop the scheduler."""
    global _TRANSLATOR
    for entry in _TRACKERS.values():
        entry["refresher"].stop()
        task = entry.get("initial")
        if task is not None and not task.done():
            task.cancel()
    _TRACKERS.clear()
    _TRANSLATOR = None
    shutdown_scheduler()
