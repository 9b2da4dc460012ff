import asyncio
import logging
import sys
import threading
from collections import deque
from datetime import datetime
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class BufferedLogHandler(logging.Handler):
    """Keeps the last ``maxlen`` records and forwards new ones to queue subscribers.

    Records can come from any thread; each subscriber queue is fed on its own loop.
    """

    def __init__(self, maxlen: int = 500):
        super().__init__()
        self._buffer: deque[dict] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._subscribers: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []

    def emit(self, record: logging.LogRecord) -> None:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": self.format(record),
        }
        with self._lock:
            self._buffer.append(entry)
            subscribers = list(self._subscribers)

        for loop, queue in subscribers:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(queue.put_nowait, entry)

    def get_buffer(self) -> list[dict]:
        with self._lock:
            return list(self._buffer)

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def subscribe(self, loop: asyncio.AbstractEventLoop) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._subscribers.append((loop, queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers = [(lp, q) for lp, q in self._subscribers if q is not queue]


log_handler = BufferedLogHandler()
log_handler.setFormatter(logging.Formatter(LOG_FORMAT))

_configured = False


def setup_logging(level: Optional[str] = "INFO") -> None:
    """Console logging plus the in-app buffer. Safe to call more than once."""
    global _configured
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))
    if _configured:
        return
    logging.basicConfig(format=LOG_FORMAT, stream=sys.stdout)
    root.addHandler(log_handler)
    # httpx logs every request at INFO; one line per streamed chat is enough.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
