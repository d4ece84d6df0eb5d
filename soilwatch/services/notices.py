from __future__ import annotations
import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..core.timeutil import now_utc
from ..domain.models import Notice

logger = logging.getLogger(__name__)


class NoticeBus:
    """Broadcast of short user-facing messages.

    Each subscriber gets its own bounded queue; a slow subscriber loses its
    oldest notices rather than blocking the publisher.
    """

    def __init__(self, maxsize: int = 100, keep_recent: int = 20) -> None:
        self._maxsize = maxsize
        self._subscribers: set[asyncio.Queue[Notice]] = set()
        self._recent: deque[Notice] = deque(maxlen=keep_recent)

    def publish(self, kind: str, text: str) -> Notice:
        notice = Notice(kind=kind, text=text, ts_utc=now_utc())
        self._recent.append(notice)
        logger.info("notice[%s]: %s", kind, text)
        for q in list(self._subscribers):
            if q.full():
                q.get_nowait()
            q.put_nowait(notice)
        return notice

    def recent(self) -> list[Notice]:
        return list(self._recent)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[Notice]]:
        q: asyncio.Queue[Notice] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.add(q)
        try:
            yield q
        finally:
            self._subscribers.discard(q)
