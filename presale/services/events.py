"""Domain event recording (transactional outbox)."""

import json
from enum import Enum
from typing import Any, Dict

from sqlalchemy.orm import Session

from presale.db.models import Event
from presale.log import get_logger
from presale.utils.formatting import event_data_to_json_safe

logger = get_logger(__name__)


class EventName(str, Enum):
    """Events emitted by campaign operations."""

    CAMPAIGN_DEPLOYED = "CampaignDeployed"
    PRESALE_STARTED = "PresaleStarted"
    CONTRIBUTED = "Contributed"
    STAGE_CHANGED = "StageChanged"
    LIQUIDITY_ADDED = "LiquidityAdded"
    REFUNDED = "Refunded"
    TOKENS_CLAIMED = "TokensClaimed"
    PROCEEDS_WITHDRAWN = "ProceedsWithdrawn"


def record_event(
    session: Session,
    campaign_address: str,
    event_name: EventName,
    event_data: Dict[str, Any],
    timestamp: int,
) -> Event:
    """Insert an event into the outbox.

    The row is written in the operation's own session, so it is committed
    exactly when the operation commits and vanishes if it rolls back.

    Args:
        session: Database session
        campaign_address: Campaign that emitted the event
        event_name: Event name
        event_data: Event parameters
        timestamp: Engine clock at the operation

    Returns:
        The pending Event row
    """
    event = Event(
        campaign_address=campaign_address,
        event_name=event_name.value,
        event_data=json.dumps(event_data_to_json_safe(event_data)),
        timestamp=timestamp,
        published=False,
    )
    session.add(event)
    logger.debug(f"Recorded {event_name.value} for {campaign_address}")
    return event
