"""RabbitMQ connection and publishing for the event relay."""

import time
from typing import Dict, Iterator, NamedTuple, Optional

import pika
from pika.adapters.blocking_connection import BlockingChannel
from pika.exceptions import AMQPChannelError, AMQPConnectionError, NackError, UnroutableError

from presale.config import Config
from presale.log import get_logger
from presale.messaging.routing import (
    ALL_QUEUES,
    DLX_EXCHANGE_NAME,
    DLX_QUEUE_NAME,
    EXCHANGE_NAME,
    EXCHANGE_TYPE,
    QUEUE_BINDINGS,
    get_queue_arguments,
)
from presale.messaging.schema import EventMessage

logger = get_logger(__name__)


class QueueStatus(NamedTuple):
    messages: int = 0
    consumers: int = 0
    error: Optional[str] = None


def _backoff(initial: float, ceiling: float, attempts: int) -> Iterator[float]:
    """Doubling delays capped at ``ceiling``; ``attempts`` of -1 never ends."""
    delay = initial
    count = 0
    while attempts == -1 or count < attempts:
        yield delay
        delay = min(delay * 2, ceiling)
        count += 1


class RabbitMQConnection:
    """Blocking connection to the broker that owns the event topology.

    Usable as a context manager::

        with RabbitMQConnection.from_config(config) as broker:
            broker.declare_topology()
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5672,
        user: str = "guest",
        password: str = "guest",
        vhost: str = "/",
        exchange: str = EXCHANGE_NAME,
        heartbeat: int = 60,
        max_retries: int = 5,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
    ):
        """Initialize RabbitMQ connection.

        Args:
            host: Broker host
            port: Broker port
            user: Broker username
            password: Broker password
            vhost: Virtual host
            exchange: Topic exchange events are published to
            heartbeat: Heartbeat interval in seconds
            max_retries: Reconnect attempts after the first failure (-1 retries forever)
            retry_delay: First backoff delay in seconds
            max_retry_delay: Backoff ceiling in seconds
        """
        self.host = host
        self.port = port
        self.exchange = exchange
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.parameters = pika.ConnectionParameters(
            host=host,
            port=port,
            virtual_host=vhost,
            credentials=pika.PlainCredentials(user, password),
            heartbeat=heartbeat,
            blocked_connection_timeout=300,
        )
        self._connection: Optional[pika.BlockingConnection] = None
        self._channel: Optional[BlockingChannel] = None

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "RabbitMQConnection":
        return cls(exchange=config.rabbitmq_exchange, **config.get_rabbitmq_connection_params(), **kwargs)

    def __enter__(self) -> "RabbitMQConnection":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _open(self) -> None:
        self._connection = pika.BlockingConnection(self.parameters)
        self._channel = self._connection.channel()
        logger.info(f"Connected to RabbitMQ at {self.host}:{self.port}")

    def connect(self) -> None:
        """Open the connection, backing off between failed attempts.

        Raises:
            AMQPConnectionError: Once the retries are exhausted
        """
        try:
            self._open()
            return
        except AMQPConnectionError as e:
            last_error = e
            logger.warning(f"RabbitMQ at {self.host}:{self.port} unreachable: {e}")

        for attempt, delay in enumerate(_backoff(self.retry_delay, self.max_retry_delay, self.max_retries), 1):
            time.sleep(delay)
            try:
                self._open()
                return
            except AMQPConnectionError as e:
                last_error = e
                logger.warning(f"Reconnect {attempt} failed: {e}")

        logger.error(f"Giving up on RabbitMQ after {self.max_retries} retries")
        raise last_error

    def ensure_connected(self) -> None:
        if self._connection is None or self._connection.is_closed:
            self.connect()
        elif self._channel is None or self._channel.is_closed:
            self._channel = self._connection.channel()

    @property
    def channel(self) -> BlockingChannel:
        self.ensure_connected()
        return self._channel

    def close(self) -> None:
        for resource in (self._channel, self._connection):
            if resource is None or not resource.is_open:
                continue
            try:
                resource.close()
            except (AMQPConnectionError, AMQPChannelError) as e:
                logger.warning(f"Error closing RabbitMQ {type(resource).__name__}: {e}")
        self._channel = None
        self._connection = None

    def declare_topology(self) -> None:
        """Declare the event exchange, the dead letter path and the bound queues."""
        channel = self.channel
        channel.exchange_declare(exchange=self.exchange, exchange_type=EXCHANGE_TYPE, durable=True)
        channel.exchange_declare(exchange=DLX_EXCHANGE_NAME, exchange_type="direct", durable=True)
        channel.queue_declare(queue=DLX_QUEUE_NAME, durable=True)
        channel.queue_bind(queue=DLX_QUEUE_NAME, exchange=DLX_EXCHANGE_NAME, routing_key="dlq")

        arguments = get_queue_arguments()
        for queue, routing_keys in QUEUE_BINDINGS.items():
            channel.queue_declare(queue=queue, durable=True, arguments=arguments)
            for routing_key in routing_keys:
                channel.queue_bind(queue=queue, exchange=self.exchange, routing_key=routing_key)
            logger.info(f"Queue {queue} <- {self.exchange} [{', '.join(routing_keys)}]")

    def queue_status(self) -> Dict[str, QueueStatus]:
        """Depth and consumer count of every event queue and the dead letter queue."""
        status: Dict[str, QueueStatus] = {}
        for queue in ALL_QUEUES + [DLX_QUEUE_NAME]:
            try:
                frame = self.channel.queue_declare(queue=queue, passive=True)
            except AMQPChannelError as e:
                # A passive declare of a missing queue closes the channel
                status[queue] = QueueStatus(error=str(e))
                continue
            status[queue] = QueueStatus(frame.method.message_count, frame.method.consumer_count)
        return status

    def purge_queue(self, queue: str) -> int:
        count = self.channel.queue_purge(queue).method.message_count
        logger.info(f"Purged {count} messages from {queue}")
        return count


class RabbitMQPublisher:
    """Publishes event messages as persistent JSON."""

    def __init__(self, connection: RabbitMQConnection, max_attempts: int = 3):
        self.connection = connection
        self.max_attempts = max_attempts
        self.confirming = False

    def enable_confirm_delivery(self) -> None:
        """Have the broker confirm each publish; unroutable or nacked messages then fail."""
        if not self.confirming:
            self.connection.channel.confirm_delivery()
            self.confirming = True

    def publish(self, message: EventMessage, routing_key: Optional[str] = None) -> bool:
        """Publish one message.

        Args:
            message: Event message
            routing_key: Override for the message's own routing key

        Returns:
            True if the broker accepted the message
        """
        routing_key = routing_key or message.to_routing_key()
        properties = pika.BasicProperties(
            content_type="application/json",
            delivery_mode=2,  # survive broker restart
            message_id=str(message.event_id),
            type=message.event_type,
        )
        body = message.model_dump_json()

        for attempt in range(1, self.max_attempts + 1):
            try:
                self.connection.ensure_connected()
                self.connection.channel.basic_publish(
                    exchange=self.connection.exchange,
                    routing_key=routing_key,
                    body=body,
                    properties=properties,
                    mandatory=self.confirming,
                )
            except (UnroutableError, NackError) as e:
                logger.error(f"Broker refused event {message.event_id}: {e}")
                return False
            except (AMQPConnectionError, AMQPChannelError) as e:
                logger.warning(f"Publishing event {message.event_id} failed ({attempt}/{self.max_attempts}): {e}")
                if attempt == self.max_attempts:
                    break
                self.connection.connect()
                if self.confirming:
                    self.connection.channel.confirm_delivery()
            else:
                logger.debug(f"Published event {message.event_id} to {routing_key}")
                return True

        logger.error(f"Event {message.event_id} not published after {self.max_attempts} attempts")
        return False
