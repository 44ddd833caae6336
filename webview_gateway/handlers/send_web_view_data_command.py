from typing import Optional
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.service_container import ServiceContainer
from webview_gateway.dispatchers.web_view_event_dispatcher import (
    WEB_VIEW_DATA_SENT,
    web_view_event_dispatcher,
    web_view_failed_dispatcher,
)
from webview_gateway.handlers.command_payload import (
    MalformedPayloadError,
    required_int,
    required_str,
)
from webview_gateway.web_view_api import WebViewApi
from webview_gateway.web_view_types import SendWebViewDataError


async def send_web_view_data_command_handler(ctx: ServiceContainer, api: WebViewApi, envelope: EventEnvelope) -> Optional[bool]:
    payload = envelope.payload
    try:
        bot_id = required_int(payload, 'bot_id')
        button_text = required_str(payload, 'button_text')
        data = required_str(payload, 'data')
    except MalformedPayloadError as e:
        ctx.logger.error("Malformed payload. Aborting...", extra={'error': str(e)})
        await web_view_failed_dispatcher(ctx=ctx, command=envelope, reason="malformed_payload")
        return None

    try:
        await api.send_web_view_data(bot_id=bot_id, button_text=button_text, data=data)
    except SendWebViewDataError as e:
        ctx.logger.warning("Sending web view data failed", extra={
            'bot_id': bot_id,
            'error': str(e),
        })
        await web_view_failed_dispatcher(ctx=ctx, command=envelope, reason="generic")
        return None

    await web_view_event_dispatcher(ctx=ctx, command=envelope, type=WEB_VIEW_DATA_SENT, payload={
        'bot_id': bot_id,
    })
    return True
