"""Exchange, queue and routing key layout for campaign events."""

from enum import Enum
from typing import Dict, List

EXCHANGE_NAME = "presale_events"
EXCHANGE_TYPE = "topic"

DLX_EXCHANGE_NAME = "presale_events.dlx"
DLX_QUEUE_NAME = "presale.dlq"


class RoutingKey(str, Enum):
    CAMPAIGN_DEPLOYED = "event.campaign_deployed"
    PRESALE_STARTED = "event.presale_started"
    CONTRIBUTED = "event.contributed"
    STAGE_CHANGED = "event.stage_changed"
    LIQUIDITY_ADDED = "event.liquidity_added"
    REFUNDED = "event.refunded"
    TOKENS_CLAIMED = "event.tokens_claimed"
    PROCEEDS_WITHDRAWN = "event.proceeds_withdrawn"


class QueueName(str, Enum):
    LIFECYCLE = "presale.lifecycle"
    CONTRIBUTIONS = "presale.contributions"
    PAYOUTS = "presale.payouts"


_EVENT_ROUTING: Dict[str, RoutingKey] = {
    "CampaignDeployed": RoutingKey.CAMPAIGN_DEPLOYED,
    "PresaleStarted": RoutingKey.PRESALE_STARTED,
    "Contributed": RoutingKey.CONTRIBUTED,
    "StageChanged": RoutingKey.STAGE_CHANGED,
    "LiquidityAdded": RoutingKey.LIQUIDITY_ADDED,
    "Refunded": RoutingKey.REFUNDED,
    "TokensClaimed": RoutingKey.TOKENS_CLAIMED,
    "ProceedsWithdrawn": RoutingKey.PROCEEDS_WITHDRAWN,
}

QUEUE_BINDINGS: Dict[str, List[str]] = {
    QueueName.LIFECYCLE.value: [
        RoutingKey.CAMPAIGN_DEPLOYED.value,
        RoutingKey.PRESALE_STARTED.value,
        RoutingKey.STAGE_CHANGED.value,
        RoutingKey.LIQUIDITY_ADDED.value,
    ],
    QueueName.CONTRIBUTIONS.value: [RoutingKey.CONTRIBUTED.value],
    QueueName.PAYOUTS.value: [
        RoutingKey.REFUNDED.value,
        RoutingKey.TOKENS_CLAIMED.value,
        RoutingKey.PROCEEDS_WITHDRAWN.value,
    ],
}

ALL_QUEUES = [queue.value for queue in QueueName]

QUEUE_MESSAGE_TTL = 604800000  # 7 days in milliseconds
QUEUE_MAX_LENGTH = 100000


def get_routing_key_for_event(event_name: str) -> str:
    """Routing key for an event name, ``event.unknown`` if unmapped."""
    routing_key = _EVENT_ROUTING.get(event_name)
    return routing_key.value if routing_key else "event.unknown"


def get_queue_arguments() -> Dict:
    return {
        "x-message-ttl": QUEUE_MESSAGE_TTL,
        "x-max-length": QUEUE_MAX_LENGTH,
        "x-dead-letter-exchange": DLX_EXCHANGE_NAME,
        "x-dead-letter-routing-key": "dlq",
    }
