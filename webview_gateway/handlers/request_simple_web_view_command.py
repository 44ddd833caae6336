from typing import Optional
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.service_container import ServiceContainer
from webview_gateway.dispatchers.web_view_event_dispatcher import (
    WEB_VIEW_SIMPLE_READY,
    web_view_event_dispatcher,
    web_view_failed_dispatcher,
)
from webview_gateway.handlers.command_payload import (
    MalformedPayloadError,
    optional_mapping,
    required_int,
    required_str,
)
from webview_gateway.web_view_api import WebViewApi
from webview_gateway.web_view_types import RequestSimpleWebViewError


async def request_simple_web_view_command_handler(ctx: ServiceContainer, api: WebViewApi, envelope: EventEnvelope) -> Optional[str]:
    payload = envelope.payload
    try:
        bot_id = required_int(payload, 'bot_id')
        url = required_str(payload, 'url')
        theme_params = optional_mapping(payload, 'theme_params')
    except MalformedPayloadError as e:
        ctx.logger.error("Malformed payload. Aborting...", extra={'error': str(e)})
        await web_view_failed_dispatcher(ctx=ctx, command=envelope, reason="malformed_payload")
        return None

    try:
        web_view_url = await api.request_simple_web_view(
            bot_id=bot_id, url=url, theme_params=theme_params)
    except RequestSimpleWebViewError as e:
        ctx.logger.warning("Simple web view request failed", extra={
            'bot_id': bot_id,
            'error': str(e),
        })
        await web_view_failed_dispatcher(ctx=ctx, command=envelope, reason="generic")
        return None

    await web_view_event_dispatcher(ctx=ctx, command=envelope, type=WEB_VIEW_SIMPLE_READY, payload={
        'bot_id': bot_id,
        'url': web_view_url,
    })
    return web_view_url
