"""
Category / search page batch extraction.

``extract_category`` is the client: it hands the category URL to the remote
extraction service and returns every item in one go. ``parse_category_page``
is what that service runs (see ``zentrack.web.api``).
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as ModelValidationError
from pydantic.alias_generators import to_camel

from zentrack.core import BatchError, NOT_AVAILABLE, ValidationError
from zentrack.fetchers.rules import FieldRule, apply_rules, digits_to_int
from zentrack.fetchers.zenmarket import is_zenmarket_url, parse_document

log = logging.getLogger("zentrack.fetchers.category")


class CategoryItem(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    url: str
    bids: int = 0
    time_remaining: str = NOT_AVAILABLE
    categories: List[str] = Field(default_factory=list)
    current_price: str = NOT_AVAILABLE
    buyout_price: Optional[str] = None


class BatchResult(BaseModel):
    items: List[CategoryItem]
    progress: float = Field(default=1.0, ge=0, le=1)


# --------------------------------------------------------------------------- #
#  Page parsing (server side)
# --------------------------------------------------------------------------- #

CARD_SELECTOR = "div.product"

CATEGORY_RULES: dict[str, FieldRule] = {
    "title": FieldRule("a.product-title", NOT_AVAILABLE),
    "url": FieldRule("a.product-title", None, attr="href", url=True),
    "bids": FieldRule(".bids", 0, digits_to_int),
    "time_remaining": FieldRule(".time-left", NOT_AVAILABLE),
    "categories": FieldRule(".category a", many=True),
    "current_price": FieldRule(".price .amount", NOT_AVAILABLE),
    "buyout_price": FieldRule(".buyout-price .amount", None),
}


def parse_category_page(markup: str, base_url: Optional[str] = None) -> list[CategoryItem]:
    soup = parse_document(markup)
    items: list[CategoryItem] = []
    for card in soup.select(CARD_SELECTOR):
        fields = apply_rules(card, CATEGORY_RULES, base_url)
        if not fields["url"]:
            continue
        items.append(CategoryItem(**fields))
    log.debug("Parsed %d items from %s", len(items), base_url)
    return items


# --------------------------------------------------------------------------- #
#  Result filters
# --------------------------------------------------------------------------- #

_DURATION_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(days?|d|hours?|hrs?|h|minutes?|mins?|m)\b", re.I
)
_HOURS_PER_UNIT = {"d": 24.0, "h": 1.0, "m": 1 / 60}


def hours_remaining(text: str) -> Optional[float]:
    """'2 days 4 hours' -> 52.0; None when no duration can be read."""
    parts = _DURATION_RE.findall(text or "")
    if not parts:
        return None
    return sum(float(n) * _HOURS_PER_UNIT[unit[0].lower()] for n, unit in parts)


def filter_items(
    items: Iterable[CategoryItem],
    *,
    term: Optional[str] = None,
    with_bids: bool = False,
    max_hours: Optional[float] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
) -> list[CategoryItem]:
    """Narrow batch results; every given criterion must hold.

    Prices are compared in yen as read from ``current_price``. An item whose
    time left cannot be read never passes ``max_hours``.
    """
    needle = (term or "").strip().lower()
    out: list[CategoryItem] = []
    for item in items:
        if needle and needle not in item.title.lower():
            continue
        if with_bids and item.bids <= 0:
            continue
        if max_hours is not None:
            hours = hours_remaining(item.time_remaining)
            if hours is None or hours > max_hours:
                continue
        price = digits_to_int(item.current_price)
        if min_price is not None and price < min_price:
            continue
        if max_price is not None and price > max_price:
            continue
        out.append(item)
    return out


# --------------------------------------------------------------------------- #
#  Remote batch client
# --------------------------------------------------------------------------- #


async def extract_category(
    category_url: str,
    on_progress: Optional[Callable[[float], None]] = None,
    *,
    endpoint: str,
    timeout: float = 60,
    client: Optional[httpx.AsyncClient] = None,
) -> list[CategoryItem]:
    """Extract every item of a category page through the remote service.

    ``on_progress`` is called exactly once, with ``1.0``, after a successful
    extraction; the service does not report intermediate progress.
    """
    category_url = (category_url or "").strip()
    if not is_zenmarket_url(category_url):
        raise ValidationError(f"Invalid URL: {category_url!r}")

    try:
        if client is not None:
            r = await client.post(endpoint, json={"url": category_url}, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as c:
                r = await c.post(endpoint, json={"url": category_url})
        r.raise_for_status()
        result = BatchResult.model_validate(r.json())
    except httpx.HTTPError as exc:
        log.error("Error scraping category %s: %s", category_url, exc)
        raise BatchError("Failed to scrape category data") from exc
    except (ValueError, ModelValidationError) as exc:
        log.error("Malformed category response for %s: %s", category_url, exc)
        raise BatchError("Failed to scrape category data") from exc

    if on_progress is not None:
        on_progress(1.0)
    return result.items
