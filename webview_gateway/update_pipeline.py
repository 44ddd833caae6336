import logging
from typing import Any, Optional, Protocol
from hydrogram import Client, raw
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.logging_context import get_correlation_id
from webview_gateway.core.service_container import ServiceContainer


class UpdatePipeline(Protocol):
    async def ingest(self, updates: raw.base.Updates) -> None: ...


def to_serializable(obj: Any) -> Any:
    """Turns raw TL objects (slotted, with nested lists and bytes) into JSON friendly values."""
    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj
    elif isinstance(obj, bytes):
        return obj.hex()
    elif isinstance(obj, (list, tuple)):
        return [to_serializable(item) for item in obj]
    elif isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}
    elif hasattr(obj, "QUALNAME") and hasattr(obj, "__slots__"):
        fields = {
            attr: to_serializable(getattr(obj, attr))
            for attr in obj.__slots__
            if getattr(obj, attr, None) is not None
        }
        return {"_": obj.QUALNAME, **fields}
    elif hasattr(obj, "isoformat"):
        return obj.isoformat()
    else:
        return str(obj)


class ClientUpdatePipeline:
    """Feeds updates back into the hydrogram client so its dispatcher and handlers see them."""

    def __init__(self, client: Client, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    async def ingest(self, updates: raw.base.Updates) -> None:
        await self.client.handle_updates(updates)
        self.logger.debug("Updates handed to client", extra={'updates': updates.QUALNAME})


class BrokerUpdatePipeline:
    """Publishes updates onto the bus for whichever service applies them."""

    def __init__(self, ctx: ServiceContainer, routing_key: str = "telegram_events") -> None:
        self.ctx = ctx
        self.routing_key = routing_key

    async def ingest(self, updates: raw.base.Updates) -> None:
        event = EventEnvelope.create(type="events.telegram.updates",
                                     correlation_id=get_correlation_id(),
                                     payload={'updates': to_serializable(updates)})
        await self.ctx.safe_publish(
            routing_key=self.routing_key, body=event.to_json(), exchange_name=''
        )
        self.ctx.logger.info("Updates published to event bus", extra={
            'routing_key': self.routing_key,
            'updates': updates.QUALNAME,
        })
