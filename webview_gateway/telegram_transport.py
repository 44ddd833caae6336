import asyncio
import logging
from typing import Any, Protocol
from hydrogram import Client
from hydrogram.errors import RPCError


class TransportError(Exception):
    """A remote call failed: network, protocol or server-side rejection."""

    def __init__(self, method: str, cause: BaseException) -> None:
        super().__init__(f"{method} failed: {cause!r}")
        self.method = method
        self.cause = cause


class WireRequest(Protocol):
    @property
    def flags(self) -> int: ...

    def to_raw(self, platform: str) -> Any: ...


class TelegramTransport:
    """Single-shot raw calls through a started hydrogram client. No retries happen here."""

    def __init__(self, client: Client, platform: str = "android", logger: logging.Logger | None = None) -> None:
        self.client = client
        self.platform = platform
        self.logger = logger or logging.getLogger(__name__)

    async def request(self, request: WireRequest) -> Any:
        query = request.to_raw(self.platform)
        method = query.QUALNAME

        self.logger.debug(f"Invoking {method}", extra={'flags': request.flags})
        try:
            return await self.client.invoke(query)
        except (RPCError, ConnectionError, OSError, asyncio.TimeoutError) as e:
            self.logger.error(f"{method} failed", extra={'error': repr(e)})
            raise TransportError(method, e) from e
