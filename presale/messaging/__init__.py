"""Messaging: RabbitMQ publishing of the campaign event outbox."""

from presale.messaging.outbox import OutboxRelay
from presale.messaging.rabbitmq import RabbitMQConnection, RabbitMQPublisher
from presale.messaging.routing import EXCHANGE_NAME, RoutingKey, get_routing_key_for_event
from presale.messaging.schema import EventMessage

__all__ = [
    "EventMessage",
    "RoutingKey",
    "EXCHANGE_NAME",
    "get_routing_key_for_event",
    "RabbitMQConnection",
    "RabbitMQPublisher",
    "OutboxRelay",
]
