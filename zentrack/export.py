"""Spreadsheet export of batch-extracted category items."""

from __future__ import annotations

import io
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

from openpyxl import Workbook

from zentrack.core import NOT_AVAILABLE
from zentrack.fetchers.category import CategoryItem

SHEET_TITLE = "Zen Market Items"
COLUMNS = (
    "Title",
    "URL",
    "Bids",
    "Time Remaining",
    "Current Price",
    "Buyout Price",
    "Categories",
)


def export_filename(today: Optional[date] = None) -> str:
    return f"zen-market-export-{(today or date.today()).isoformat()}.xlsx"


def item_row(item: CategoryItem) -> list:
    return [
        item.title,
        item.url,
        item.bids,
        item.time_remaining,
        item.current_price,
        item.buyout_price or NOT_AVAILABLE,
        ", ".join(item.categories),
    ]


def build_workbook(items: Iterable[CategoryItem]) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(list(COLUMNS))
    for item in items:
        ws.append(item_row(item))
    return wb


def workbook_bytes(items: Iterable[CategoryItem]) -> bytes:
    buf = io.BytesIO()
    build_workbook(items).save(buf)
    return buf.getvalue()


def export_items(
    items: Iterable[CategoryItem], directory: Path | str = ".", today: Optional[date] = None
) -> Path:
    path = Path(directory) / export_filename(today)
    path.parent.mkdir(parents=True, exist_ok=True)
    build_workbook(items).save(path)
    return path
