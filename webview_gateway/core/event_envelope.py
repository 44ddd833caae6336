from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import json
from typing import Optional
import uuid


@dataclass
class EventEnvelope:
    type: str
    correlation_id: str
    version: int
    timestamp: str
    payload: dict

    @staticmethod
    def create(
        type: str,
        payload: dict,
        version: int = 1,
        correlation_id: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> "EventEnvelope":
        return EventEnvelope(
            type=type,
            version=version,
            correlation_id=correlation_id or str(uuid.uuid4()),
            timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
            payload=payload,
        )

    @staticmethod
    def from_dict(d: dict) -> "EventEnvelope":
        return EventEnvelope(
            type=d.get("type", ""),
            version=int(d.get("version", 1)),
            correlation_id=d.get("correlation_id", ""),
            timestamp=d.get("timestamp", ""),
            payload=d.get("payload") or {},
        )

    @staticmethod
    def from_json(body: str | bytes) -> "EventEnvelope":
        return EventEnvelope.from_dict(json.loads(body))

    def follow_up(self, type: str, payload: dict, version: int = 1) -> "EventEnvelope":
        """an envelope answering this one, carrying the same correlation id"""
        return EventEnvelope.create(
            type=type,
            payload=payload,
            version=version,
            correlation_id=self.correlation_id,
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)
