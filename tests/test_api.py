"""HTTP API tests against a mocked Zenmarket."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from zentrack import db as core_db
from zentrack.fetchers.zenmarket import ZenmarketAuction
from zentrack.web import tracker_bridge as bridge
from zentrack.web.app import app

from conftest import AUCTION_URL, CATEGORY_HTML, LISTING_HTML

CATEGORY_URL = "https://zenmarket.jp/en/yahoo.aspx?c=1"
BROKEN_URL = "https://zenmarket.jp/en/auction/broken"
ALICE = {"X-User-Id": "alice"}


@pytest.fixture
def upstream(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Route every Zenmarket request to canned pages; returns the requested URLs."""
    pages = {AUCTION_URL: (200, LISTING_HTML), CATEGORY_URL: (200, CATEGORY_HTML)}
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        status, body = pages.get(str(request.url), (404, "not found"))
        return httpx.Response(status, text=body)

    monkeypatch.setattr(
        bridge,
        "site_factory",
        lambda settings: ZenmarketAuction(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        ),
    )
    return requested


@pytest.fixture
def client(temp_db, upstream):
    with TestClient(app) as c:
        yield c


class TestScrape:
    def test_success(self, client):
        r = client.post("/api/scrape", json={"url": AUCTION_URL})
        assert r.status_code == 200
        body = r.json()
        assert body["url"] == AUCTION_URL
        assert body["productName"] == "Vintage Seiko Watch"
        assert body["priceInJPY"] == 12345
        assert body["currentPrice"] == "¥12,345"
        assert body["numberOfBids"] == "7"
        assert body["timeRemaining"] == "2 days 4 hours"
        assert body["imageUrl"] == "https://zenmarket.jp/images/seiko.jpg"
        assert "lastUpdated" in body

    def test_foreign_url_rejected_before_fetch(self, client, upstream):
        r = client.post("/api/scrape", json={"url": "https://example.com/auction/x"})
        assert r.status_code == 400
        assert "error" in r.json()
        assert upstream == []

    def test_upstream_failure(self, client):
        r = client.post("/api/scrape", json={"url": BROKEN_URL})
        assert r.status_code == 502
        assert "404" in r.json()["error"]


class TestCategory:
    def test_batch_endpoint(self, client):
        r = client.post("/api/category", json={"url": CATEGORY_URL})
        assert r.status_code == 200
        items = r.json()["items"]
        assert [i["title"] for i in items] == ["Seiko 5 Automatic", "Casio G-Shock"]
        assert items[0]["timeRemaining"] == "3 hours"
        assert items[0]["buyoutPrice"] == "¥12,000"
        assert items[1]["buyoutPrice"] is None

    def test_filters_from_query(self, client):
        r = client.post(
            "/api/category", params={"term": "seiko", "with_bids": "true"}, json={"url": CATEGORY_URL}
        )
        assert [i["title"] for i in r.json()["items"]] == ["Seiko 5 Automatic"]

        r = client.post("/api/category", params={"max_price": 5000}, json={"url": CATEGORY_URL})
        assert [i["title"] for i in r.json()["items"]] == ["Casio G-Shock"]

    def test_export(self, client):
        r = client.post("/api/category/export", json={"url": CATEGORY_URL})
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("application/vnd.openxmlformats")
        assert "zen-market-export-" in r.headers["content-disposition"]
        assert r.content[:2] == b"PK"


class TestTracked:
    def test_add_list_refresh_delete(self, client):
        r = client.post("/api/tracked", json={"url": AUCTION_URL}, headers=ALICE)
        assert r.status_code == 201
        rec = r.json()
        assert rec["pending"] is False
        assert rec["price_minor"] == 12345
        assert rec["price_display"] == "¥12,345"
        assert rec["bid_count"] == 7

        listed = client.get("/api/tracked", headers=ALICE).json()
        assert [x["id"] for x in listed] == [rec["id"]]
        assert client.get("/api/tracked", headers={"X-User-Id": "bob"}).json() == []
        assert [a.id for a in core_db.auctions_for("alice")] == [rec["id"]]

        assert client.post("/api/tracked/refresh", headers=ALICE).json() == {"updated": 1}

        assert client.delete(f"/api/tracked/{rec['id']}", headers=ALICE).status_code == 204
        assert client.delete(f"/api/tracked/{rec['id']}", headers=ALICE).status_code == 404
        assert core_db.auctions_for("alice") == []

    def test_failed_submission_leaves_nothing_behind(self, client):
        r = client.post("/api/tracked", json={"url": BROKEN_URL}, headers=ALICE)
        assert r.status_code == 502
        assert client.get("/api/tracked", headers=ALICE).json() == []

    def test_user_header_required(self, client):
        assert client.get("/api/tracked").status_code == 422


class TestPreferences:
    def test_currency_change_reprices_tracked(self, client):
        client.post("/api/tracked", json={"url": AUCTION_URL}, headers=ALICE)

        r = client.put("/api/preferences", json={"preferred_currency": "USD"}, headers=ALICE)
        assert r.status_code == 200
        assert r.json()["preferred_currency"] == "USD"

        (rec,) = client.get("/api/tracked", headers=ALICE).json()
        assert rec["price_display"] == "$82.71"
        assert rec["price_minor"] == 12345

    def test_language_change_without_provider_keeps_names(self, client):
        client.post("/api/tracked", json={"url": AUCTION_URL}, headers=ALICE)
        r = client.put("/api/preferences", json={"preferred_language": "de"}, headers=ALICE)
        assert r.status_code == 200
        (rec,) = client.get("/api/tracked", headers=ALICE).json()
        assert rec["display_name"] == "Vintage Seiko Watch"

    @pytest.mark.parametrize(
        "payload",
        [
            {"refresh_interval": 0},
            {"refresh_interval": 61},
            {"preferred_currency": "XXX"},
            {"preferred_language": "xx"},
        ],
    )
    def test_invalid_values_rejected(self, client, payload):
        r = client.put("/api/preferences", json=payload, headers=ALICE)
        assert r.status_code == 400
        assert client.get("/api/preferences", headers=ALICE).json()["refresh_interval"] == 5

    def test_disable_auto_refresh_clears_job(self, client):
        client.get("/api/tracked", headers=ALICE)
        r = client.put("/api/preferences", json={"auto_refresh": False}, headers=ALICE)
        assert r.json()["auto_refresh"] is False
        assert bridge._TRACKERS["alice"]["refresher"].job is None


class TestAlertsAndPackages:
    def test_toggle_alert(self, client):
        r = client.post("/api/alerts/a1", headers=ALICE)
        assert r.json() == {"auction_id": "a1", "alerted": True}
        assert client.get("/api/alerts", headers=ALICE).json() == ["a1"]
        assert client.post("/api/alerts/a1", headers=ALICE).json()["alerted"] is False

    def test_create_package(self, client):
        r = client.post(
            "/api/packages",
            json={"name": "November haul", "total_items_cost": 1000, "tracking_number": "EMS1JP"},
            headers=ALICE,
        )
        assert r.status_code == 201
        body = r.json()
        assert body["tracking_number"] == "EMS1JP"
        assert body["total_display"] == "¥1,000"
        assert [p["id"] for p in client.get("/api/packages", headers=ALICE).json()] == [body["id"]]
        assert client.get("/api/packages", headers={"X-User-Id": "bob"}).json() == []

    def test_create_package_requires_name(self, client):
        r = client.post("/api/packages", json={"name": ""}, headers=ALICE)
        assert r.status_code == 422

    def test_packages_in_preferred_currency(self, client):
        pkg = core_db.package_add("alice", "October haul", 45000)
        core_db.preferences_upsert("alice", preferred_currency="EUR")

        (out,) = client.get("/api/packages", headers=ALICE).json()
        assert out["name"] == "October haul"
        assert out["total_display"] == "€279,00"

        assert client.delete(f"/api/packages/{pkg.id}", headers=ALICE).status_code == 204
        assert client.delete(f"/api/packages/{pkg.id}", headers=ALICE).status_code == 404


def test_unrequestable_url_is_a_client_error(client):
    r = client.post("/api/tracked", json={"url": "https://zenmarket.jp/en/auction/a\x01b"},
                    headers=ALICE)
    assert r.status_code == 400
    assert "error" in r.json()
    assert client.get("/api/tracked", headers=ALICE).json() == []


def test_log_stream_rejects_unknown_level(client):
    r = client.get("/api/logs/stream", params={"level": "chatty"})
    assert r.status_code == 400
