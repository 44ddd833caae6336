import asyncio
import logging
from typing import Any, List
import fakeredis
import pytest
from hydrogram import raw
from redis.exceptions import ConnectionError as RedisConnectionError
from webview_gateway.peer_cache import PEER_CHANNEL, PEER_CHAT, PEER_USER, CachedPeer, PeerCache
from webview_gateway.web_view_api import WebViewApi

logger = logging.getLogger("TestRunner")

BOT = CachedPeer(id=777000111, type=PEER_USER, access_hash=1111,
                 username="demo_bot", first_name="Demo", is_bot=True)
USER = CachedPeer(id=12345, type=PEER_USER, access_hash=2222,
                  first_name="Alice", phone="15550001")
CHAT = CachedPeer(id=-4242, type=PEER_CHAT, title="Group")
CHANNEL = CachedPeer(id=-1001234567890, type=PEER_CHANNEL, access_hash=3333, title="News")


class FakeTransport:
    """Scripted stand-in for TelegramTransport; an exception in the script is raised instead of returned."""

    def __init__(self, responses: List[Any] = None, platform: str = "android") -> None:
        self.platform = platform
        self.responses = list(responses or [])
        self.requests = []

    async def request(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if self.responses else True
        if isinstance(response, BaseException):
            raise response
        return response


class FakeUpdatePipeline:
    def __init__(self, error: Exception = None) -> None:
        self.ingested = []
        self.error = error

    async def ingest(self, updates) -> None:
        self.ingested.append(updates)
        if self.error is not None:
            raise self.error


class FakeClock:
    """Sleep replacement that advances virtual time and yields once to the loop."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class FakeServiceContainer:
    """Records published envelopes instead of talking to RabbitMQ."""

    def __init__(self, logger: logging.Logger = logger) -> None:
        self.logger = logger
        self.published = []

    async def publish_event(self, envelope, routing_key=None) -> None:
        self.published.append(envelope)

    async def safe_publish(self, routing_key: str, body: str, exchange_name: str = '') -> None:
        self.published.append((routing_key, body))

    def published_types(self) -> List[str]:
        return [envelope.type for envelope in self.published]


class FailingRedis:
    """Redis client whose every call fails as if the server went away."""

    async def get(self, key):
        raise RedisConnectionError("redis down")

    async def transaction(self, func, *watches, **kwargs):
        raise RedisConnectionError("redis down")


def make_updates(seq: int = 0) -> raw.types.Updates:
    return raw.types.Updates(updates=[], users=[], chats=[], date=1700000000, seq=seq)


def make_document(document_id: int = 501) -> raw.types.Document:
    return raw.types.Document(
        id=document_id,
        access_hash=9001,
        file_reference=b"\x01\x02",
        date=1700000000,
        mime_type="image/svg+xml",
        size=2048,
        dc_id=2,
        attributes=[],
    )


def make_attach_menu_bot(icons=None) -> raw.types.AttachMenuBot:
    return raw.types.AttachMenuBot(bot_id=BOT.id, short_name="demo", icons=icons or [])


@pytest.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis()
    yield client
    await client.aclose()


@pytest.fixture
async def peers(redis) -> PeerCache:
    cache = PeerCache(redis=redis, logger=logger)
    await cache.update_peers([BOT, USER, CHAT, CHANNEL])
    return cache


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def updates() -> FakeUpdatePipeline:
    return FakeUpdatePipeline()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api(peers, transport, updates, clock) -> WebViewApi:
    return WebViewApi(
        peers=peers,
        transport=transport,
        updates=updates,
        sleep=clock.sleep,
        logger=logger,
    )


@pytest.fixture
def ctx() -> FakeServiceContainer:
    return FakeServiceContainer()
