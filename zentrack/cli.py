import asyncio
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Annotated, Optional
import os
import typer

from zentrack import currency as fx
from zentrack import db as core_db
from zentrack.core import ZentrackError
from zentrack.export import export_items
from zentrack.fetchers.category import extract_category, filter_items, parse_category_page
from zentrack.fetchers.zenmarket import ZenmarketAuction
from zentrack.settings import load_settings
from zentrack.tracking import Tracker
from zentrack.translate import Translator

if os.getenv("DEBUG_CLI", "0") == "1":
    import debugpy

    debugpy.listen(("0.0.0.0", 5679))
    if os.getenv("DEBUGPY_WAIT", "0") == "1":
        debugpy.wait_for_client()


# ---------------------------------------------------------------------------
# Global logging configuration - set once at import time
# ---------------------------------------------------------------------------
LOG_LEVEL = logging.DEBUG if os.getenv("ZENTRACK_DEBUG", "0") == "1" else logging.INFO
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s -- %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
file_handler = RotatingFileHandler(
    "./zentrack.log", maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8", delay=True
)
file_handler.setLevel(LOG_LEVEL)
file_handler.setFormatter(
    logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s -- %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
)

root = logging.getLogger()  # root logger
root.addHandler(file_handler)


app = typer.Typer(help="zentrack CLI")


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port.")] = 8000,
    reload: Annotated[bool, typer.Option(help="Auto-reload on code changes.")] = False,
):
    """Run the HTTP API and the refresh scheduler."""
    import uvicorn

    uvicorn.run("zentrack.web.app:app", host=host, port=port, reload=reload)


@app.command()
def scrape(
    url: Annotated[str, typer.Argument(help="Zenmarket auction URL.")],
    currency: Annotated[str, typer.Option("--currency", "-c")] = "",
    language: Annotated[str, typer.Option("--language", "-l")] = "",
):
    """Fetch one auction and print its normalized fields."""
    settings = load_settings()
    tracker = Tracker(
        ZenmarketAuction.from_settings(settings),
        Translator.from_settings(settings),
        currency=currency or settings.locale.currency,
        language=language or settings.locale.language,
    )
    try:
        rec = asyncio.run(tracker.submit(url))
    except ZentrackError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(1)
    bids = rec.bid_count if rec.bid_count is not None else "N/A"
    typer.echo(f"{rec.display_name}\n{rec.price_display} | {bids} bids | {rec.time_remaining}")
    if rec.image_ref:
        typer.echo(rec.image_ref)


@app.command()
def category(
    url: Annotated[str, typer.Argument(help="Zenmarket category or search URL.")],
    out_dir: Annotated[
        Path, typer.Option("--out-dir", "-o", help="Where to write the .xlsx export.")
    ] = Path("."),
    export: Annotated[bool, typer.Option(help="Write a spreadsheet.")] = True,
    local: Annotated[
        bool, typer.Option(help="Parse the page here instead of calling the batch service.")
    ] = False,
    search: Annotated[Optional[str], typer.Option(help="Keep titles containing this text.")] = None,
    with_bids: Annotated[bool, typer.Option(help="Keep only items with bids.")] = False,
    max_hours: Annotated[Optional[float], typer.Option(help="Keep items ending within N hours.")] = None,
    min_price: Annotated[Optional[int], typer.Option(help="Minimum current price in yen.")] = None,
    max_price: Annotated[Optional[int], typer.Option(help="Maximum current price in yen.")] = None,
):
    """Batch-extract every item of a category page."""
    settings = load_settings()

    async def _run():
        if local:
            site = ZenmarketAuction.from_settings(settings)
            html, final_url = await site.get_html(site.validate_url(url))
            return parse_category_page(html, final_url)
        return await extract_category(
            url,
            lambda p: typer.echo(f"progress: {p:.0%}"),
            endpoint=settings.batch.endpoint,
            timeout=settings.batch.timeout_seconds,
        )

    try:
        items = asyncio.run(_run())
    except ZentrackError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(1)
    items = filter_items(
        items,
        term=search,
        with_bids=with_bids,
        max_hours=max_hours,
        min_price=min_price,
        max_price=max_price,
    )
    for item in items:
        typer.echo(f"{item.bids:>4} | {item.current_price:>12} | {item.title[:60]}")
    typer.echo(f"{len(items)} items")
    if export:
        typer.echo(f"wrote {export_items(items, out_dir)}")


@app.command()
def ls(
    user: Annotated[str, typer.Option("--user", "-u", help="User id.")],
):
    """Show a user's tracked auctions."""
    code = core_db.preferences_get(user).preferred_currency
    for row in core_db.auctions_for(user):
        seen = f"{row.last_updated:%Y-%m-%d %H:%M}" if row.last_updated else "-"
        typer.echo(
            f"{seen} | {row.product_name[:40]:40} | {fx.normalize(row.price_in_jpy, code):>12}"
        )


if __name__ == "__main__":
    app()
