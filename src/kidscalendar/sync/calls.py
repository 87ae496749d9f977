# src/kidscalendar/sync/calls.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..core.ports import RemoteStore
from ..errors import TransientRemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RemoteCaller:
    """
    Timeout + fixed-count retry around RemoteStore calls.

    Only transient failures (network, timeout, 5xx) are retried. Everything
    else (auth, validation, duplicates) is raised on the first attempt so the
    caller can decide per entity.
    """

    def __init__(
        self,
        remote: RemoteStore,
        *,
        read_timeout_s: float = 12.0,
        write_timeout_s: float = 10.0,
        retries: int = 2,
        retry_delay_s: float = 1.0,
    ) -> None:
        self.remote = remote
        self.read_timeout_s = max(0.01, float(read_timeout_s))
        self.write_timeout_s = max(0.01, float(write_timeout_s))
        self.retries = max(0, int(retries))
        self.retry_delay_s = max(0.0, float(retry_delay_s))

    async def _call(self, what: str, factory: Callable[[], Awaitable[T]], timeout_s: float) -> T:
        last: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                return await asyncio.wait_for(factory(), timeout=timeout_s)
            except TimeoutError as e:
                last = e
                logger.warning("%s timed out after %.1fs (attempt %d)", what, timeout_s, attempt + 1)
            except TransientRemoteError as e:
                last = e
                logger.warning("%s failed transiently (attempt %d): %s", what, attempt + 1, e)
            if attempt < self.retries and self.retry_delay_s:
                await asyncio.sleep(self.retry_delay_s)

        raise TransientRemoteError(f"{what} failed after {self.retries + 1} attempts: {last}") from last

    async def read(self, what: str, factory: Callable[[], Awaitable[T]]) -> T:
        return await self._call(what, factory, self.read_timeout_s)

    async def write(self, what: str, factory: Callable[[], Awaitable[T]]) -> T:
        return await self._call(what, factory, self.write_timeout_s)
