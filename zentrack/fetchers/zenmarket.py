"""
Zenmarket (Yahoo! Auctions proxy) listing scraper.

Extracts, per auction page:
  • title             (#itemTitle)
  • price_minor       (#lblPriceY, yen as an int)
  • bid_count_text    (#bidNum)
  • time_remaining    (#lblTimeLeft)
  • image_url         (#imgPreview[src])
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from zentrack.core import (
    ExtractError,
    FetchError,
    ListingSite,
    NOT_AVAILABLE,
    RawFields,
    ValidationError,
)
from zentrack.fetchers.rules import FieldRule, apply_rules, digits_to_int

log = logging.getLogger("zentrack.fetchers.zenmarket")

ZENMARKET_URL_RE = re.compile(r"^https?://(?:[\w-]+\.)*zenmarket\.jp(?:[/?#]|$)", re.I)

# --------------------------------------------------------------------------- #
#  Field rules
# --------------------------------------------------------------------------- #

LISTING_RULES: dict[str, FieldRule] = {
    "title": FieldRule("#itemTitle", NOT_AVAILABLE),
    "price_minor": FieldRule("#lblPriceY", 0, digits_to_int),
    "bid_count_text": FieldRule("#bidNum", NOT_AVAILABLE),
    "time_remaining_text": FieldRule("#lblTimeLeft", NOT_AVAILABLE),
    "image_url": FieldRule("#imgPreview", None, attr="src", url=True),
}


def parse_document(markup: str) -> BeautifulSoup:
    if not isinstance(markup, str) or not markup.strip():
        raise ExtractError("Empty page markup")
    try:
        soup = BeautifulSoup(markup, "html.parser")
    except Exception as exc:  # bs4 raises ParserRejectedMarkup and friends
        raise ExtractError(f"Failed to parse HTML: {exc}") from exc
    # element-less text is still a document; every lookup just misses
    return soup


def extract(markup: str, base_url: Optional[str] = None) -> RawFields:
    """Apply ``LISTING_RULES`` to one listing page."""
    soup = parse_document(markup)
    return RawFields(**apply_rules(soup, LISTING_RULES, base_url))


def is_zenmarket_url(url: str) -> bool:
    return bool(ZENMARKET_URL_RE.match(url or ""))


# --------------------------------------------------------------------------- #
#  Scraper
# --------------------------------------------------------------------------- #


class ZenmarketAuction(ListingSite):
    """zenmarket.jp auction page scraper."""

    def __init__(
        self,
        *,
        headers: Optional[dict[str, str]] = None,
        proxy: Optional[str] = None,
        timeout: float = 30,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.headers = headers
        self.proxy = proxy
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "ZenmarketAuction":
        return cls(
            headers=settings.random_headers(),
            proxy=settings.random_proxy(),
            timeout=settings.network.timeout_seconds,
        )

    def accepts(self, url: str) -> bool:
        return is_zenmarket_url(url)

    async def fetch(self, url: str) -> RawFields:
        url = self.validate_url(url)
        html, final_url = await self.get_html(url)
        return extract(html, base_url=final_url)

    # ---------------- HTTP ---------------- #

    async def get_html(self, url: str) -> tuple[str, str]:
        try:
            if self._client is not None:
                r = await self._client.get(url, headers=self.headers, timeout=self.timeout)
                r.raise_for_status()
                return r.text, str(r.url)
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.timeout,
                headers=self.headers,
                proxy=self.proxy,
            ) as client:
                r = await client.get(url)
                r.raise_for_status()
                return r.text, str(r.url)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise FetchError(f"{url} returned HTTP {status}", status_code=status) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"{url} could not be fetched: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise ValidationError(f"Invalid URL: {url!r}") from exc
