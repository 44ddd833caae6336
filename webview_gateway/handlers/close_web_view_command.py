from typing import Optional
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.service_container import ServiceContainer
from webview_gateway.dispatchers.web_view_event_dispatcher import (
    WEB_VIEW_CLOSED,
    web_view_event_dispatcher,
    web_view_failed_dispatcher,
)
from webview_gateway.handlers.command_payload import MalformedPayloadError, required_int
from webview_gateway.web_view_sessions import WebViewSessions


async def close_web_view_command_handler(ctx: ServiceContainer, sessions: WebViewSessions, envelope: EventEnvelope) -> Optional[bool]:
    try:
        query_id = required_int(envelope.payload, 'query_id')
    except MalformedPayloadError as e:
        ctx.logger.error("Malformed payload. Aborting...", extra={'error': str(e)})
        await web_view_failed_dispatcher(ctx=ctx, command=envelope, reason="malformed_payload")
        return None

    was_open = sessions.close(query_id)
    if not was_open:
        ctx.logger.warning("No open web view for query id", extra={'query_id': query_id})

    await web_view_event_dispatcher(ctx=ctx, command=envelope, type=WEB_VIEW_CLOSED, payload={
        'query_id': query_id,
        'was_open': was_open,
    })
    return was_open
