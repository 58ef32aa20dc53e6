# zentrack/web/logging_stream.py
"""
Live log tail for the API: every log record is formatted once and pushed to
each subscribed client, which reads it back as a server-sent event named
after the record's level (``event: warning``).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s -- %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# uvicorn's own loggers do not propagate to root
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def sse_message(data: str, event: Optional[str] = None) -> str:
    """Encode one server-sent event; multi-line payloads become several data: lines."""
    lines = [f"event: {event}"] if event else []
    lines += [f"data: {part}" for part in data.splitlines() or [""]]
    return "\n".join(lines) + "\n\n"


@dataclass
class Subscriber:
    min_level: int
    queue: asyncio.Queue = field(repr=False)
    dropped: int = 0

    def offer(self, level: int, line: str) -> None:
        if level < self.min_level:
            return
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait((level, line))


class BroadcastHandler(logging.Handler):
    """Fan log lines out to every subscriber; slow readers lose their oldest lines."""

    def __init__(self, maxsize: int = 1000):
        super().__init__()
        self.maxsize = maxsize
        self._subs: list[Subscriber] = []

    @property
    def clients(self) -> int:
        return len(self._subs)

    def subscribe(self, min_level: int = logging.NOTSET) -> Subscriber:
        sub = Subscriber(min_level, asyncio.Queue(maxsize=self.maxsize))
        self._subs.append(sub)
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        if sub in self._subs:
            self._subs.remove(sub)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        for sub in list(self._subs):
            sub.offer(record.levelno, line)


async def stream_logs(
    handler: BroadcastHandler, min_level: int = logging.NOTSET
) -> AsyncIterator[str]:
    """SSE chunks for one client, starting with a ``connected`` event."""
    sub = handler.subscribe(min_level)
    try:
        yield sse_message(logging.getLevelName(min_level), event="connected")
        while True:
            level, line = await sub.queue.get()
            yield sse_message(line, event=logging.getLevelName(level).lower())
    finally:
        handler.unsubscribe(sub)


def setup_broadcast_logging(handler: BroadcastHandler, level: int = logging.INFO) -> None:
    """Attach ``handler`` to the root logger and to uvicorn's loggers."""
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
    logging.getLogger().setLevel(level)
    for lg in (logging.getLogger(), *map(logging.getLogger, _UVICORN_LOGGERS)):
        if handler not in lg.handlers:
            lg.addHandler(handler)
    for name in _UVICORN_LOGGERS:
        logging.getLogger(name).setLevel(level)


broadcast = BroadcastHandler()
