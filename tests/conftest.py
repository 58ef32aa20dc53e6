"""Shared fixtures for the zentrack tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from zentrack import db as core_db
from zentrack.core import ListingSite, LocalizeError, RawFields
from zentrack.fetchers.zenmarket import is_zenmarket_url

AUCTION_URL = "https://zenmarket.jp/en/auction/x"

LISTING_HTML = """
<html>
  <body>
    <h1 id="itemTitle">  Vintage Seiko Watch  </h1>
    <span id="lblPriceY">¥12,345</span>
    <span id="bidNum">7</span>
    <span id="lblTimeLeft">2 days 4 hours</span>
    <img id="imgPreview" src="/images/seiko.jpg" />
  </body>
</html>
"""

CATEGORY_HTML = """
<html><body>
  <div class="product">
    <a class="product-title" href="/en/auction.aspx?itemCode=a1">Seiko 5 Automatic</a>
    <span class="bids">Bids: 4</span>
    <span class="time-left">3 hours</span>
    <div class="category"><a>Watches</a><a>Men's</a></div>
    <div class="price"><span class="amount">¥8,000</span></div>
    <div class="buyout-price"><span class="amount">¥12,000</span></div>
  </div>
  <div class="product">
    <a class="product-title" href="https://zenmarket.jp/en/auction.aspx?itemCode=b2">Casio G-Shock</a>
    <div class="price"><span class="amount">¥3,500</span></div>
  </div>
  <div class="product">
    <span class="product-title">Advert without a link</span>
  </div>
</body></html>
"""


class FakeSite(ListingSite):
    """In-memory listing site. Set ``gate`` to hold every fetch until it is set."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.results: dict[str, object] = {}
        self.gate: Optional[asyncio.Event] = None

    def accepts(self, url: str) -> bool:
        return is_zenmarket_url(url)

    async def fetch(self, url: str) -> RawFields:
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        res = self.results.get(
            url,
            RawFields(
                title="Vintage Seiko Watch",
                price_minor=1000,
                bid_count_text="3",
                time_remaining_text="1 day",
            ),
        )
        if isinstance(res, Exception):
            raise res
        return res


class FakeLocalizer:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail = False

    async def localize(self, text: str, target_language: str) -> str:
        self.calls.append((text, target_language))
        if target_language == "en":
            return text
        if self.fail:
            raise LocalizeError("provider down")
        return f"[{target_language}] {text}"


@pytest.fixture
def fake_site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def fake_localizer() -> FakeLocalizer:
    return FakeLocalizer()


@pytest.fixture
def listing_html() -> str:
    return LISTING_HTML


@pytest.fixture
def temp_db(tmp_path: Path):
    """Bind the module engine to a throwaway SQLite file."""
    return core_db.init_db(f"sqlite:///{tmp_path / 'zentrack.sqlite'}")


@pytest.fixture(autouse=True)
def _no_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ZENTRACK_CONFIG", str(tmp_path / "missing.toml"))
