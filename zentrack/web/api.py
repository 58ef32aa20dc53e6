# zentrack/web/api.py
from __future__ import annotations
import logging
from datetime import date, datetime, timezone
from typing import Optional, List

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from zentrack import core, currency as fx, db as core_db
from zentrack.export import export_filename, workbook_bytes
from zentrack.fetchers.category import CategoryItem, filter_items, parse_category_page
from zentrack.fetchers.zenmarket import ZenmarketAuction
from zentrack.scheduler import check_interval
from zentrack.settings import load_settings
from zentrack.tracking import TrackedRecord
from zentrack.translate import check_language
from . import tracker_bridge as bridge
from .logging_stream import broadcast, stream_logs

api = FastAPI(
    title="zentrack API", version="1.0.0", docs_url="/docs", openapi_url="/openapi.json"
)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class UrlIn(BaseModel):
    url: str


class ListingOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    product_name: str
    price_in_jpy: int = Field(alias="priceInJPY")
    current_price: str
    number_of_bids: str
    time_remaining: str
    image_url: Optional[str] = None
    last_updated: datetime


class CategoryOut(BaseModel):
    items: List[CategoryItem]


class PreferencesIn(BaseModel):
    preferred_currency: Optional[str] = None
    preferred_language: Optional[str] = None
    auto_refresh: Optional[bool] = None
    refresh_interval: Optional[int] = None


class PreferencesOut(BaseModel):
    preferred_currency: str
    preferred_language: str
    auto_refresh: bool
    refresh_interval: int


class AlertOut(BaseModel):
    auction_id: str
    alerted: bool


class PackageIn(BaseModel):
    name: str = Field(min_length=1)
    total_items_cost: int = Field(default=0, ge=0)
    send_date: Optional[date] = None
    tracking_number: Optional[str] = None


class PackageOut(BaseModel):
    id: int
    name: str
    send_date: Optional[date] = None
    tracking_number: Optional[str] = None
    total_items_cost: int
    total_display: str


# ---- error mapping -----------------------------------------------------------

_STATUS = {
    core.ValidationError: 400,
    core.FetchError: 502,
    core.BatchError: 502,
    core.LocalizeError: 502,
    core.ExtractError: 500,
}


@api.exception_handler(core.ZentrackError)
async def _zentrack_error(request: Request, exc: core.ZentrackError):
    status = next((code for cls, code in _STATUS.items() if isinstance(exc, cls)), 500)
    return JSONResponse({"error": str(exc)}, status_code=status)


# ---- scraping ----------------------------------------------------------------


def _site() -> ZenmarketAuction:
    return bridge.site_factory(load_settings())


@api.post("/scrape", response_model=ListingOut)
async def scrape(payload: UrlIn):
    fields = await _site().fetch(payload.url)
    return ListingOut(
        url=payload.url,
        product_name=fields.title,
        price_in_jpy=fields.price_minor,
        current_price=fx.normalize(fields.price_minor, fx.BASE_CURRENCY),
        number_of_bids=fields.bid_count_text,
        time_remaining=fields.time_remaining_text,
        image_url=fields.image_url,
        last_updated=datetime.now(timezone.utc),
    )


class CategoryFilters(BaseModel):
    term: Optional[str] = None
    with_bids: bool = False
    max_hours: Optional[float] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None


async def _category_items(url: str, filters: CategoryFilters) -> list[CategoryItem]:
    site = _site()
    html, final_url = await site.get_html(site.validate_url(url))
    return filter_items(parse_category_page(html, final_url), **filters.model_dump())


@api.post("/category", response_model=CategoryOut)
async def category(payload: UrlIn, filters: CategoryFilters = Depends()):
    return CategoryOut(items=await _category_items(payload.url, filters))


@api.post("/category/export")
async def category_export(payload: UrlIn, filters: CategoryFilters = Depends()):
    items = await _category_items(payload.url, filters)
    return Response(
        workbook_bytes(items),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


# ---- tracked auctions ----------------------------------------------------------


@api.get("/tracked", response_model=List[TrackedRecord])
async def tracked(x_user_id: str = Header()):
    tracker = await bridge.get_tracker(x_user_id)
    return list(tracker.snapshot)


@api.post("/tracked", response_model=TrackedRecord, status_code=201)
async def add_tracked(payload: UrlIn, x_user_id: str = Header()):
    tracker = await bridge.get_tracker(x_user_id)
    record = await tracker.submit(payload.url)
    if record is None:
        raise HTTPException(409, "Auction was removed while loading")
    return record


@api.delete("/tracked/{auction_id}", status_code=204)
async def delete_tracked(auction_id: str, x_user_id: str = Header()):
    tracker = await bridge.get_tracker(x_user_id)
    if not tracker.delete(auction_id):
        raise HTTPException(404, "Not currently tracked")


@api.post("/tracked/refresh")
async def refresh_tracked(x_user_id: str = Header()):
    entry = await bridge.get_entry(x_user_id)
    return {"updated": await entry["refresher"].run_cycle()}


# ---- preferences / alerts / packages ---------------------------------------------


def _prefs_out(row: core_db.Preference) -> PreferencesOut:
    return PreferencesOut(
        preferred_currency=row.preferred_currency,
        preferred_language=row.preferred_language,
        auto_refresh=row.auto_refresh,
        refresh_interval=row.refresh_interval,
    )


@api.get("/preferences", response_model=PreferencesOut)
def preferences(x_user_id: str = Header()):
    return _prefs_out(core_db.preferences_get(x_user_id))


@api.put("/preferences", response_model=PreferencesOut)
async def update_preferences(payload: PreferencesIn, x_user_id: str = Header()):
    if payload.preferred_currency is not None and not fx.is_supported(payload.preferred_currency):
        raise core.ValidationError(f"Unsupported currency: {payload.preferred_currency!r}")
    if payload.preferred_language is not None:
        check_language(payload.preferred_language)
    if payload.refresh_interval is not None:
        check_interval(payload.refresh_interval)
    row = core_db.preferences_upsert(x_user_id, **payload.model_dump())
    await bridge.apply_preferences(x_user_id, row)
    return _prefs_out(row)


@api.get("/alerts", response_model=List[str])
def alerts(x_user_id: str = Header()):
    return core_db.alerts_for(x_user_id)


@api.post("/alerts/{auction_id}", response_model=AlertOut)
def toggle_alert(auction_id: str, x_user_id: str = Header()):
    return AlertOut(auction_id=auction_id, alerted=core_db.alert_toggle(x_user_id, auction_id))


def _package_out(p: core_db.Package, code: str) -> PackageOut:
    return PackageOut(
        id=p.id,
        name=p.name,
        send_date=p.send_date,
        tracking_number=p.tracking_number,
        total_items_cost=p.total_items_cost,
        total_display=fx.normalize(p.total_items_cost, code),
    )


@api.get("/packages", response_model=List[PackageOut])
def packages(x_user_id: str = Header()):
    code = core_db.preferences_get(x_user_id).preferred_currency
    return [_package_out(p, code) for p in core_db.packages_for(x_user_id)]


@api.post("/packages", response_model=PackageOut, status_code=201)
def add_package(payload: PackageIn, x_user_id: str = Header()):
    row = core_db.package_add(x_user_id, **payload.model_dump())
    return _package_out(row, core_db.preferences_get(x_user_id).preferred_currency)


@api.delete("/packages/{package_id}", status_code=204)
def delete_package(package_id: int, x_user_id: str = Header()):
    if not core_db.package_delete(x_user_id, package_id):
        raise HTTPException(404, "Package not found")


# ---- logs --------------------------------------------------------------------


@api.get("/logs/stream")
async def logs_stream(level: str = "INFO"):
    min_level = logging.getLevelName(level.upper())
    if not isinstance(min_level, int):
        raise core.ValidationError(f"Unknown log level: {level!r}")
    return StreamingResponse(stream_logs(broadcast, min_level), media_type="text/event-stream")
