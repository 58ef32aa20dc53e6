from __future__ import annotations
import logging, os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from zentrack import db as core_db
from .api import api as api_app
from .logging_stream import LOG_DATEFMT, LOG_FORMAT, broadcast, setup_broadcast_logging
from .tracker_bridge import ensure_scheduler_started, reset as reset_trackers

if os.getenv("DEBUG_WEB", "0") == "1":
    import debugpy

    debugpy.listen(("0.0.0.0", 5679))
    if os.getenv("DEBUGPY_WAIT", "0") == "1":
        debugpy.wait_for_client()

LOG_LEVEL = os.getenv("ZENTRACK_LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT,
)
setup_broadcast_logging(broadcast, level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger("zentrack.web")


app = FastAPI(title="zentrack", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ALLOW_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/api", api_app)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.on_event("startup")
async def _startup():
    core_db.get_engine()
    await ensure_scheduler_started()
    logger.info("zentrack web started")


@app.on_event("shutdown")
async def _shutdown():
    reset_trackers()
    logger.info("zentrack web stopped")
