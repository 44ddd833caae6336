import asyncio
import json
from hydrogram import Client
from hydrogram.handlers import RawUpdateHandler
from injector import Injector
from webview_gateway.core.app_module import AppModule
from webview_gateway.core.command_router import CommandRouter, CommandRouterError
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.logging_context import get_correlation_id, set_correlation_id
from webview_gateway.core.service_container import ServiceContainer
from webview_gateway.core.settings import GatewaySettings
from webview_gateway.handlers.close_web_view_command import close_web_view_command_handler
from webview_gateway.handlers.raw_update_event import make_raw_update_handler
from webview_gateway.handlers.request_simple_web_view_command import request_simple_web_view_command_handler
from webview_gateway.handlers.request_web_view_command import request_web_view_command_handler
from webview_gateway.handlers.send_web_view_data_command import send_web_view_data_command_handler
from webview_gateway.peer_cache import PeerCache
from webview_gateway.web_view_api import WebViewApi
from webview_gateway.web_view_sessions import WebViewSessions

router = CommandRouter()

CORRELATION_GUARD = {
    'middleware_before': ["correlation_guard_prepare"],
    'middleware_after': ["correlation_guard_validate"],
}


@router.route(command_type="commands.webview.request-simple", version=1, **CORRELATION_GUARD)
async def handle_request_simple_web_view_command(envelope: EventEnvelope, ctx: ServiceContainer, api: WebViewApi):
    return await request_simple_web_view_command_handler(ctx=ctx, api=api, envelope=envelope)


@router.route(command_type="commands.webview.request", version=1, **CORRELATION_GUARD)
async def handle_request_web_view_command(envelope: EventEnvelope, ctx: ServiceContainer, api: WebViewApi, sessions: WebViewSessions):
    return await request_web_view_command_handler(ctx=ctx, api=api, sessions=sessions, envelope=envelope)


@router.route(command_type="commands.webview.close", version=1, **CORRELATION_GUARD)
async def handle_close_web_view_command(envelope: EventEnvelope, ctx: ServiceContainer, sessions: WebViewSessions):
    return await close_web_view_command_handler(ctx=ctx, sessions=sessions, envelope=envelope)


@router.route(command_type="commands.webview.send-data", version=1, **CORRELATION_GUARD)
async def handle_send_web_view_data_command(envelope: EventEnvelope, ctx: ServiceContainer, api: WebViewApi):
    return await send_web_view_data_command_handler(ctx=ctx, api=api, envelope=envelope)


# Middleware
@router.register_middleware(name="correlation_guard_prepare")
async def correlation_guard_prepare(envelope: EventEnvelope):
    envelope.payload["_correlation_snapshot"] = get_correlation_id()
    return True


@router.register_middleware(name="correlation_guard_validate")
async def correlation_guard_validate(envelope: EventEnvelope):
    expected = envelope.payload.get("_correlation_snapshot")
    actual = get_correlation_id()
    if expected != actual:
        raise RuntimeError("Context corruption detected")
    return True


@router.register_before_middleware(name="logger")
async def log_command_start(envelope: EventEnvelope, ctx: ServiceContainer):
    ctx.logger.info(f"⏱️ Handling {envelope.type}")
    return True


async def handle_command_message(body: bytes, ctx: ServiceContainer) -> None:
    try:
        body_dict = json.loads(body.decode())
    except (UnicodeDecodeError, json.JSONDecodeError):
        ctx.logger.error("Invalid JSON in message")
        return

    if not isinstance(body_dict, dict):
        ctx.logger.error("Command body is not an object")
        return

    correlation_id: str = body_dict.get('correlation_id', '')
    if not correlation_id:
        ctx.logger.error("Missing correlation_id in command payload, dropping it")
        return

    set_correlation_id(correlation_id)
    envelope = EventEnvelope.from_dict(body_dict)

    if not router.get_route(envelope=envelope):
        ctx.logger.warning(
            "Unknown command type received.",
            extra={"command_type": envelope.type, "version": envelope.version}
        )
        return

    try:
        result = await router.dispatch(envelope=envelope)
    except CommandRouterError:
        ctx.logger.exception("Command dispatch failed")
        return
    except Exception:
        # one failing command must not stop the queue consumer
        ctx.logger.exception("Command handler crashed", extra={'command_type': envelope.type})
        return
    ctx.logger.info("Command handled", extra={
        'command_type': result.command_type,
        'handler_result': result.handler_result,
    })


async def web_view_command_processor(ctx: ServiceContainer) -> None:
    queue = await ctx.channel.declare_queue(
        name=ctx.settings.webview.commands_queue,
        auto_delete=False
    )

    async with queue.iterator() as queue_iter:
        async for message in queue_iter:
            async with message.process():
                await handle_command_message(message.body, ctx)


async def main() -> None:
    settings = GatewaySettings.from_env()
    ctx = await ServiceContainer.create(settings=settings, log_name="WebViewGateway")

    telegram_app = Client(
        name=settings.telegram.session_name,
        api_id=settings.telegram.api_id,
        api_hash=settings.telegram.api_hash,
    )

    injector = Injector([AppModule(ctx=ctx, telegram_app=telegram_app)])
    sessions = injector.get(WebViewSessions)

    try:
        ctx.logger.info("WebView Gateway started!")

        router.set_logger(ctx.logger)
        router.register(ctx)
        router.register(injector.get(WebViewApi))
        router.register(sessions)

        telegram_app.add_handler(RawUpdateHandler(
            make_raw_update_handler(injector.get(PeerCache))))

        await ctx.channel.declare_queue(name=settings.webview.events_queue, durable=False)
        await telegram_app.start()

        await web_view_command_processor(ctx=ctx)
    finally:
        closed = await sessions.close_all()
        ctx.logger.info("Closed web view sessions", extra={'closed': closed})
        if telegram_app.is_connected:
            await telegram_app.stop()
        await ctx.close()


if __name__ == '__main__':
    asyncio.run(main())
