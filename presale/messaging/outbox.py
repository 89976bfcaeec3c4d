"""Relay from the events outbox table to the broker."""

from datetime import datetime, timezone
from typing import Optional, Protocol

from presale.db.models import Event
from presale.db.session import get_session
from presale.log import get_logger
from presale.messaging.schema import EventMessage

logger = get_logger(__name__)


class Publisher(Protocol):
    def publish(self, message: EventMessage, routing_key: Optional[str] = None) -> bool: ...


class OutboxRelay:
    """Publishes committed events in id order, at least once."""

    def __init__(self, publisher: Publisher):
        self.publisher = publisher

    def pending_count(self) -> int:
        with get_session() as session:
            return session.query(Event).filter(Event.published.is_(False)).count()

    def publish_pending(self, limit: int = 100) -> int:
        """Publish up to ``limit`` unpublished events.

        Each event is marked published in its own transaction right after the
        broker accepts it. The relay stops at the first failure so later
        events are never published ahead of an earlier one.

        Returns:
            Number of events published
        """
        with get_session() as session:
            pending_ids = [
                row.id
                for row in session.query(Event.id)
                .filter(Event.published.is_(False))
                .order_by(Event.id)
                .limit(limit)
                .all()
            ]

        published = 0
        for event_id in pending_ids:
            with get_session() as session:
                event = session.get(Event, event_id)
                if event is None or event.published:
                    continue
                message = EventMessage.from_event(event)
                if not self.publisher.publish(message):
                    logger.warning(f"Stopping relay at event {event_id}: publish failed")
                    break
                event.published = True
                event.published_at = datetime.now(timezone.utc)
            published += 1

        if published:
            logger.info(f"Published {published} event(s)")
        return published
