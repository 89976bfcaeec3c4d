"""Pydantic models for outgoing event messages."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Literal

from pydantic import BaseModel, Field, field_serializer, field_validator

from presale.db.models import Event
from presale.messaging.routing import get_routing_key_for_event
from presale.services.events import EventName

EVENT_NAMES = tuple(name.value for name in EventName)


class EventMessage(BaseModel):
    """Campaign event as published to the broker.

    Attributes:
        message_type: Always "event"
        event_id: Outbox row id, increasing in commit order per campaign
        event_type: Event name (e.g. "Contributed")
        campaign_address: Campaign that emitted the event
        timestamp: Engine clock at the operation (unix seconds)
        event_data: Event parameters; amounts are decimal strings
        published_at: When the relay sent the message
    """

    message_type: Literal["event"] = "event"
    event_id: int
    event_type: str
    campaign_address: str
    timestamp: int
    event_data: Dict[str, Any]
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("event_type")
    @classmethod
    def known_event(cls, v: str) -> str:
        if v not in EVENT_NAMES:
            raise ValueError(f"Unknown event type: {v}")
        return v

    @field_validator("campaign_address")
    @classmethod
    def lowercase_address(cls, v: str) -> str:
        return v.lower() if v else v

    @field_serializer("published_at")
    def serialize_published_at(self, v: datetime) -> str:
        return v.isoformat()

    @classmethod
    def from_event(cls, event: Event) -> "EventMessage":
        """Build a message from an outbox row."""
        return cls(
            event_id=event.id,
            event_type=event.event_name,
            campaign_address=event.campaign_address,
            timestamp=event.timestamp,
            event_data=json.loads(event.event_data),
        )

    def to_routing_key(self) -> str:
        return get_routing_key_for_event(self.event_type)
