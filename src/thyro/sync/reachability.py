"""Network reachability probes consumed by the offline queue's monitor."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


@runtime_checkable
class ReachabilityProbe(Protocol):
    """Anything that can tell whether the remote backend is reachable right now."""

    async def check(self) -> bool: ...


class TcpProbe:
    """Reachable when a TCP connection to the backend's host can be opened."""

    def __init__(self, host: str, port: int, timeout: float = 3.0) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    @classmethod
    def for_url(cls, url: str, timeout: float = 3.0) -> TcpProbe:
        parts = urlsplit(url)
        if not parts.hostname:
            raise ValueError(f"Cannot probe URL without a host: {url!r}")
        port = parts.port or (443 if parts.scheme == "https" else 80)
        return cls(parts.hostname, port, timeout)

    async def check(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("Probe %s:%d failed: %s", self.host, self.port, e)
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
