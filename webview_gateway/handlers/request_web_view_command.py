from typing import Optional
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.service_container import ServiceContainer
from webview_gateway.dispatchers.web_view_event_dispatcher import (
    WEB_VIEW_COMPLETED,
    WEB_VIEW_CONFIRMATION_REQUIRED,
    WEB_VIEW_READY,
    web_view_event_dispatcher,
    web_view_expired_dispatcher,
    web_view_failed_dispatcher,
)
from webview_gateway.handlers.command_payload import (
    MalformedPayloadError,
    optional_int,
    optional_mapping,
    optional_str,
    required_int,
)
from webview_gateway.web_view_api import WebViewApi
from webview_gateway.web_view_sessions import WebViewSessions
from webview_gateway.web_view_types import (
    RequestWebViewError,
    WebViewConfirmationRequired,
    WebViewResult,
)


async def request_web_view_command_handler(ctx: ServiceContainer, api: WebViewApi, sessions: WebViewSessions, envelope: EventEnvelope) -> Optional[str]:
    payload = envelope.payload
    try:
        peer_id = required_int(payload, 'peer_id')
        bot_id = required_int(payload, 'bot_id')
        url = optional_str(payload, 'url')
        theme_params = optional_mapping(payload, 'theme_params')
        reply_to_message_id = optional_int(payload, 'reply_to_message_id')
    except MalformedPayloadError as e:
        ctx.logger.error("Malformed payload. Aborting...", extra={'error': str(e)})
        await web_view_failed_dispatcher(ctx=ctx, command=envelope, reason="malformed_payload")
        return None

    try:
        result = await api.request_web_view(
            peer_id=peer_id,
            bot_id=bot_id,
            url=url,
            theme_params=theme_params,
            reply_to_message_id=reply_to_message_id,
        )
    except RequestWebViewError as e:
        ctx.logger.warning("Web view request failed", extra={
            'peer_id': peer_id,
            'bot_id': bot_id,
            'error': str(e),
        })
        await web_view_failed_dispatcher(ctx=ctx, command=envelope, reason="generic")
        return None

    if isinstance(result, WebViewResult):
        async def on_expired(query_id: int, error: BaseException) -> None:
            await web_view_expired_dispatcher(
                ctx=ctx, correlation_id=envelope.correlation_id, query_id=query_id, reason=str(error))

        sessions.open(result, on_expired=on_expired)
        await web_view_event_dispatcher(ctx=ctx, command=envelope, type=WEB_VIEW_READY, payload={
            'peer_id': peer_id,
            'bot_id': bot_id,
            'query_id': result.query_id,
            'url': result.url,
        })
        return WEB_VIEW_READY

    if isinstance(result, WebViewConfirmationRequired):
        await web_view_event_dispatcher(ctx=ctx, command=envelope, type=WEB_VIEW_CONFIRMATION_REQUIRED, payload={
            'peer_id': peer_id,
            'bot_id': bot_id,
            'bot_icon': result.bot_icon.to_dict(),
        })
        return WEB_VIEW_CONFIRMATION_REQUIRED

    # confirmation without an icon: the users were stored, nothing to show
    await web_view_event_dispatcher(ctx=ctx, command=envelope, type=WEB_VIEW_COMPLETED, payload={
        'peer_id': peer_id,
        'bot_id': bot_id,
    })
    return WEB_VIEW_COMPLETED
