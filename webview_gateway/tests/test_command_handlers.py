import asyncio
import json
import logging
import pytest
from hydrogram import raw
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.service_container import ServiceContainer
from webview_gateway.dispatchers.web_view_event_dispatcher import (
    WEB_VIEW_CLOSED,
    WEB_VIEW_COMPLETED,
    WEB_VIEW_CONFIRMATION_REQUIRED,
    WEB_VIEW_DATA_SENT,
    WEB_VIEW_EXPIRED,
    WEB_VIEW_FAILED,
    WEB_VIEW_READY,
    WEB_VIEW_SIMPLE_READY,
)
from webview_gateway.handlers.close_web_view_command import close_web_view_command_handler
from webview_gateway.handlers.command_payload import MalformedPayloadError, optional_int, required_int, safe_int
from webview_gateway.handlers.raw_update_event import make_raw_update_handler
from webview_gateway.handlers.request_simple_web_view_command import request_simple_web_view_command_handler
from webview_gateway.handlers.request_web_view_command import request_web_view_command_handler
from webview_gateway.handlers.send_web_view_data_command import send_web_view_data_command_handler
from webview_gateway.main import handle_command_message, router
from webview_gateway.peer_cache import PeerCache
from webview_gateway.telegram_transport import TransportError
from webview_gateway.web_view_api import WebViewApi
from webview_gateway.web_view_sessions import WebViewSessions
from webview_gateway.web_view_types import KeepWebViewError
from conftest import BOT, USER, FailingRedis, FakeServiceContainer, FakeTransport, logger, make_attach_menu_bot, make_document, make_updates


def command(type: str, **payload) -> EventEnvelope:
    return EventEnvelope.create(type=type, payload=payload, correlation_id="corr-42")


@pytest.fixture
def sessions():
    return WebViewSessions(logger=logger)


def test_safe_int_accepts_numeric_text_only():
    assert safe_int("15") == 15
    assert safe_int(b"7") == 7
    assert safe_int("seven") is None
    assert safe_int(None) is None
    assert optional_int({}, 'reply_to_message_id') is None
    with pytest.raises(MalformedPayloadError):
        required_int({'bot_id': "x"}, 'bot_id')


async def test_simple_web_view_command_publishes_ready(ctx, api, transport):
    transport.responses = [raw.types.SimpleWebViewResultUrl(url="https://app.example/s")]
    envelope = command("commands.webview.request-simple", bot_id=BOT.id, url="https://app.example")

    result = await request_simple_web_view_command_handler(ctx=ctx, api=api, envelope=envelope)

    assert result == "https://app.example/s"
    event = ctx.published[0]
    assert event.type == WEB_VIEW_SIMPLE_READY
    assert event.correlation_id == "corr-42"
    assert event.payload == {'bot_id': BOT.id, 'url': "https://app.example/s"}


async def test_simple_web_view_command_with_malformed_payload(ctx, api, transport):
    envelope = command("commands.webview.request-simple", bot_id="not-a-number", url="https://app.example")

    assert await request_simple_web_view_command_handler(ctx=ctx, api=api, envelope=envelope) is None

    assert transport.requests == []
    assert ctx.published[0].type == WEB_VIEW_FAILED
    assert ctx.published[0].payload == {'command': envelope.type, 'reason': "malformed_payload"}


async def test_simple_web_view_command_flow_failure(ctx, api):
    envelope = command("commands.webview.request-simple", bot_id=404, url="https://app.example")

    assert await request_simple_web_view_command_handler(ctx=ctx, api=api, envelope=envelope) is None
    assert ctx.published[0].payload['reason'] == "generic"


async def test_request_web_view_command_opens_session(ctx, api, transport, sessions):
    transport.responses = [raw.types.WebViewResultUrl(query_id=5150, url="https://app.example/q")]
    envelope = command("commands.webview.request", peer_id=USER.id, bot_id=BOT.id, reply_to_message_id="12")

    result = await request_web_view_command_handler(ctx=ctx, api=api, sessions=sessions, envelope=envelope)

    assert result == WEB_VIEW_READY
    assert 5150 in sessions
    assert transport.requests[0].reply_to_message_id == 12
    assert ctx.published[0].payload == {
        'peer_id': USER.id, 'bot_id': BOT.id, 'query_id': 5150, 'url': "https://app.example/q",
    }
    await sessions.close_all()


async def test_expired_session_publishes_expired_event(ctx, peers, updates, sessions):
    transport = FakeTransport([
        raw.types.WebViewResultUrl(query_id=6, url="https://app.example"),
        TransportError("messages.ProlongWebView", ConnectionError("gone")),
    ])
    api = WebViewApi(peers, transport, updates, keep_alive_interval=0, logger=logger)
    envelope = command("commands.webview.request", peer_id=USER.id, bot_id=BOT.id)

    await request_web_view_command_handler(ctx=ctx, api=api, sessions=sessions, envelope=envelope)
    for _ in range(20):
        await asyncio.sleep(0)
    await sessions.close_all()

    assert ctx.published_types() == [WEB_VIEW_READY, WEB_VIEW_EXPIRED]
    expired = ctx.published[1]
    assert expired.correlation_id == "corr-42"
    assert expired.payload['query_id'] == 6
    assert 6 not in sessions


async def test_request_web_view_command_confirmation(ctx, api, transport, sessions):
    icons = [raw.types.AttachMenuBotIcon(name="default_static", icon=make_document(11))]
    transport.responses = [raw.types.AttachMenuBotsBot(bot=make_attach_menu_bot(icons), users=[])]
    envelope = command("commands.webview.request", peer_id=USER.id, bot_id=BOT.id)

    result = await request_web_view_command_handler(ctx=ctx, api=api, sessions=sessions, envelope=envelope)

    assert result == WEB_VIEW_CONFIRMATION_REQUIRED
    assert ctx.published[0].payload['bot_icon']['id'] == 11
    assert len(sessions) == 0


async def test_request_web_view_command_confirmation_without_icon(ctx, api, transport, sessions):
    transport.responses = [raw.types.AttachMenuBotsBot(bot=make_attach_menu_bot(), users=[])]
    envelope = command("commands.webview.request", peer_id=USER.id, bot_id=BOT.id)

    result = await request_web_view_command_handler(ctx=ctx, api=api, sessions=sessions, envelope=envelope)

    assert result == WEB_VIEW_COMPLETED
    assert ctx.published_types() == [WEB_VIEW_COMPLETED]


async def test_request_web_view_command_rejects_bad_theme(ctx, api, transport, sessions):
    envelope = command("commands.webview.request", peer_id=USER.id, bot_id=BOT.id, theme_params="dark")

    assert await request_web_view_command_handler(ctx=ctx, api=api, sessions=sessions, envelope=envelope) is None
    assert transport.requests == []
    assert ctx.published[0].payload['reason'] == "malformed_payload"


async def test_close_command(ctx, api, transport, sessions):
    transport.responses = [raw.types.WebViewResultUrl(query_id=3, url="https://app.example")]
    result = await api.request_web_view(USER.id, BOT.id)
    sessions.open(result)

    assert await close_web_view_command_handler(ctx=ctx, sessions=sessions, envelope=command(
        "commands.webview.close", query_id=3)) is True
    assert await close_web_view_command_handler(ctx=ctx, sessions=sessions, envelope=command(
        "commands.webview.close", query_id=3)) is False

    assert ctx.published_types() == [WEB_VIEW_CLOSED, WEB_VIEW_CLOSED]
    assert [event.payload['was_open'] for event in ctx.published] == [True, False]


async def test_send_data_command(ctx, api, transport, updates):
    transport.responses = [make_updates()]
    envelope = command("commands.webview.send-data", bot_id=BOT.id, button_text="Buy", data="{}")

    assert await send_web_view_data_command_handler(ctx=ctx, api=api, envelope=envelope) is True
    assert ctx.published[0].type == WEB_VIEW_DATA_SENT
    assert len(updates.ingested) == 1


async def test_send_data_command_failure(ctx, api, transport):
    transport.responses = [TransportError("messages.SendWebViewData", OSError("down"))]
    envelope = command("commands.webview.send-data", bot_id=BOT.id, button_text="Buy", data="{}")

    assert await send_web_view_data_command_handler(ctx=ctx, api=api, envelope=envelope) is None
    assert ctx.published[0].type == WEB_VIEW_FAILED


async def test_raw_update_handler_remembers_peers(peers):
    handler = make_raw_update_handler(peers)
    users = {20: raw.types.User(id=20, access_hash=200, first_name="Carol")}

    await handler(None, raw.types.UpdateConfig(), users, {})
    await handler(None, raw.types.UpdateConfig(), {}, {})

    assert (await peers.get_peer(20)).access_hash == 200


async def test_command_message_dispatches_through_router(ctx, api, transport, sessions):
    router.register(ctx, as_type=ServiceContainer)
    router.register(api)
    router.register(sessions)
    transport.responses = [make_updates()]
    body = command("commands.webview.send-data", bot_id=BOT.id, button_text="Buy", data="x").to_json()

    await handle_command_message(body.encode(), ctx)

    assert ctx.published_types() == [WEB_VIEW_DATA_SENT]
    assert ctx.published[0].correlation_id == "corr-42"


async def test_command_message_rejects_garbage(ctx):
    await handle_command_message(b"not json", ctx)
    await handle_command_message(json.dumps([1, 2]).encode(), ctx)
    await handle_command_message(json.dumps({'type': "commands.webview.close"}).encode(), ctx)
    await handle_command_message(json.dumps({
        'type': "commands.webview.unknown", 'correlation_id': "c", 'payload': {},
    }).encode(), ctx)

    assert ctx.published == []


async def test_command_message_survives_cache_outage(ctx, transport, updates, sessions):
    router.register(ctx, as_type=ServiceContainer)
    router.register(WebViewApi(PeerCache(redis=FailingRedis(), logger=logger), transport, updates, logger=logger))
    router.register(sessions)
    body = command("commands.webview.send-data", bot_id=BOT.id, button_text="Buy", data="x").to_json()

    await handle_command_message(body.encode(), ctx)

    assert ctx.published_types() == [WEB_VIEW_FAILED]
    assert ctx.published[0].payload['reason'] == "generic"
    assert transport.requests == []


class BrokenPublisher(FakeServiceContainer):
    async def publish_event(self, envelope, routing_key=None) -> None:
        raise RuntimeError("channel closed")


async def test_command_message_logs_handler_crash(api, transport, sessions, caplog):
    ctx = BrokenPublisher()
    router.register(ctx, as_type=ServiceContainer)
    router.register(api)
    router.register(sessions)
    transport.responses = [make_updates()]
    body = command("commands.webview.send-data", bot_id=BOT.id, button_text="Buy", data="x").to_json()

    with caplog.at_level(logging.ERROR):
        await handle_command_message(body.encode(), ctx)
        # the next command is still handled
        await handle_command_message(body.encode(), ctx)

    assert caplog.text.count("Command handler crashed") == 2


def test_keep_web_view_error_reason_text():
    assert str(KeepWebViewError()) == "generic"
