# zentrack/db.py
from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, List

from sqlmodel import SQLModel, Field, create_engine, Session, select
from sqlalchemy import UniqueConstraint
from sqlalchemy.engine import Engine

from zentrack import currency as fx
from zentrack.settings import load_settings
from zentrack.tracking import TrackedRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Preference(SQLModel, table=True):
    __tablename__ = "preference"
    user_id: str = Field(primary_key=True)
    preferred_currency: str = Field(default="JPY", max_length=8)
    preferred_language: str = Field(default="en", max_length=8)
    auto_refresh: bool = True
    refresh_interval: int = Field(default=5, description="Minutes between refreshes")


class AuctionAlert(SQLModel, table=True):
    __tablename__ = "auction_alert"
    __table_args__ = (
        UniqueConstraint("auction_id", "user_id", name="uq_alert_auction_user"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    auction_id: str = Field(index=True)
    user_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class Auction(SQLModel, table=True):
    __tablename__ = "auction"
    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    url: str
    product_name: str = Field(description="Untranslated title from the last fetch")
    price_in_jpy: int = 0
    number_of_bids: Optional[int] = None
    time_remaining: str = "N/A"
    image_url: Optional[str] = None
    last_updated: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)


class Package(SQLModel, table=True):
    __tablename__ = "package"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    send_date: Optional[date] = None
    tracking_number: Optional[str] = None
    total_items_cost: int = Field(default=0, description="JPY")
    created_at: datetime = Field(default_factory=_utcnow)


_ENGINE: Optional[Engine] = None


def init_db(url: Optional[str] = None) -> Engine:
    """(Re)bind the module engine and create missing tables."""
    global _ENGINE
    url = url or load_settings().resolved_database_url()
    if url.startswith("sqlite:///"):
        Path(url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
    _ENGINE = create_engine(url, echo=False)
    SQLModel.metadata.create_all(_ENGINE)
    return _ENGINE


def get_engine() -> Engine:
    return _ENGINE or init_db()


# ---- Preferences -------------------------------------------------------------


def preferences_get(user_id: str) -> Preference:
    """Stored preferences, or the defaults (unsaved) for a new user."""
    with Session(get_engine()) as s:
        row = s.get(Preference, user_id)
        return row if row else Preference(user_id=user_id)


def preferences_upsert(user_id: str, **changes) -> Preference:
    with Session(get_engine()) as s:
        row = s.get(Preference, user_id) or Preference(user_id=user_id)
        for key, value in changes.items():
            if value is not None:
                setattr(row, key, value)
        s.add(row)
        s.commit()
        s.refresh(row)
        return row


# ---- Alerts ------------------------------------------------------------------


def alerts_for(user_id: str) -> List[str]:
    with Session(get_engine()) as s:
        stmt = select(AuctionAlert.auction_id).where(AuctionAlert.user_id == user_id)
        return list(s.exec(stmt).all())


def alert_toggle(user_id: str, auction_id: str) -> bool:
    """Flip the alert for ``auction_id``; returns True when it is now set."""
    with Session(get_engine()) as s:
        row = s.exec(
            select(AuctionAlert).where(
                AuctionAlert.user_id == user_id, AuctionAlert.auction_id == auction_id
            )
        ).first()
        if row:
            s.delete(row)
            s.commit()
            return False
        s.add(AuctionAlert(auction_id=auction_id, user_id=user_id))
        s.commit()
        return True


# ---- Tracked auctions --------------------------------------------------------


def auctions_for(user_id: str) -> List[Auction]:
    with Session(get_engine()) as s:
        stmt = (
            select(Auction)
            .where(Auction.user_id == user_id)
            .order_by(Auction.created_at)
        )
        return list(s.exec(stmt).all())


def auction_upsert(user_id: str, record: TrackedRecord) -> Auction:
    with Session(get_engine()) as s:
        row = s.get(Auction, record.id) or Auction(
            id=record.id, user_id=user_id, url=record.source_url, product_name=""
        )
        row.product_name = record.source_title or record.display_name
        row.price_in_jpy = record.price_minor
        row.number_of_bids = record.bid_count
        row.time_remaining = record.time_remaining
        row.image_url = record.image_ref
        row.last_updated = record.last_updated
        s.add(row)
        s.commit()
        s.refresh(row)
        return row


def auction_delete(user_id: str, auction_id: str) -> bool:
    with Session(get_engine()) as s:
        row = s.get(Auction, auction_id)
        if not row or row.user_id != user_id:
            return False
        s.delete(row)
        for alert in s.exec(
            select(AuctionAlert).where(AuctionAlert.auction_id == auction_id)
        ).all():
            s.delete(alert)
        s.commit()
        return True


def auction_to_record(row: Auction, currency: str) -> TrackedRecord:
    return TrackedRecord(
        id=row.id,
        source_url=row.url,
        display_name=row.product_name,
        source_title=row.product_name,
        price_minor=row.price_in_jpy,
        price_display=fx.normalize(row.price_in_jpy, currency),
        bid_count=row.number_of_bids,
        time_remaining=row.time_remaining,
        image_ref=row.image_url,
        pending=False,
        last_updated=row.last_updated,
    )


class AuctionStore:
    """``RecordStore`` writing one user's tracked records to the database."""

    def __init__(self, user_id: str):
        self.user_id = user_id

    def save(self, record: TrackedRecord) -> None:
        auction_upsert(self.user_id, record)

    def delete(self, record_id: str) -> None:
        auction_delete(self.user_id, record_id)


# ---- Packages ----------------------------------------------------------------


def packages_for(user_id: str) -> List[Package]:
    with Session(get_engine()) as s:
        stmt = (
            select(Package)
            .where(Package.user_id == user_id)
            .order_by(Package.created_at.desc())
        )
        return list(s.exec(stmt).all())


def package_add(
    user_id: str,
    name: str,
    total_items_cost: int = 0,
    send_date: Optional[date] = None,
    tracking_number: Optional[str] = None,
) -> Package:
    row = Package(
        user_id=user_id,
        name=name,
        total_items_cost=total_items_cost,
        send_date=send_date,
        tracking_number=tracking_number,
    )
    with Session(get_engine()) as s:
        s.add(row)
        s.commit()
        s.refresh(row)
        return row


def package_delete(user_id: str, package_id: int) -> bool:
    with Session(get_engine()) as s:
        row = s.get(Package, package_id)
        if not row or row.user_id != user_id:
            return False
        s.delete(row)
        s.commit()
        return True
