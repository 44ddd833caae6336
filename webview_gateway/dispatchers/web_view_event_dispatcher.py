from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.logging_context import correlation_scope
from webview_gateway.core.service_container import ServiceContainer

WEB_VIEW_SIMPLE_READY = "events.webview.simple-ready"
WEB_VIEW_READY = "events.webview.ready"
WEB_VIEW_CONFIRMATION_REQUIRED = "events.webview.confirmation-required"
WEB_VIEW_COMPLETED = "events.webview.completed"
WEB_VIEW_CLOSED = "events.webview.closed"
WEB_VIEW_EXPIRED = "events.webview.expired"
WEB_VIEW_DATA_SENT = "events.webview.data-sent"
WEB_VIEW_FAILED = "events.webview.failed"


async def web_view_event_dispatcher(ctx: ServiceContainer, command: EventEnvelope, type: str, payload: dict) -> EventEnvelope:
    event = command.follow_up(type=type, payload=payload)
    await ctx.publish_event(event)
    ctx.logger.info(f"Dispatched {type}", extra={'command': command.type})
    return event


async def web_view_failed_dispatcher(ctx: ServiceContainer, command: EventEnvelope, reason: str) -> EventEnvelope:
    return await web_view_event_dispatcher(ctx=ctx, command=command, type=WEB_VIEW_FAILED, payload={
        'command': command.type,
        'reason': reason,
    })


async def web_view_expired_dispatcher(ctx: ServiceContainer, correlation_id: str, query_id: int, reason: str) -> EventEnvelope:
    # keep-alive failures surface long after the opening command was handled
    with correlation_scope(correlation_id):
        event = EventEnvelope.create(type=WEB_VIEW_EXPIRED,
                                     correlation_id=correlation_id,
                                     payload={'query_id': query_id, 'reason': reason})
        await ctx.publish_event(event)
        ctx.logger.info(f"Dispatched {WEB_VIEW_EXPIRED}", extra={'query_id': query_id})
    return event
