"""Configuration management for the presale engine."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()

CLOCK_SOURCES = ("system", "chain")
VENUE_KINDS = ("pool", "router")


@dataclass
class Config:
    """Engine configuration."""

    # Required
    db_url: str

    log_level: str = "INFO"

    # Time source for deadline checks: wall clock or latest block timestamp
    clock: str = "system"

    # Liquidity venue
    venue: str = "pool"
    native_asset: str = "native"

    # Blockchain settings (router venue / chain clock)
    rpc_url: str = "http://127.0.0.1:8545"
    chain_id: int = 31337  # Hardhat default
    router_address: Optional[str] = None
    token_address: Optional[str] = None
    operator_address: Optional[str] = None  # unlocked account that signs router calls
    router_deadline_seconds: int = 600
    receipt_timeout_seconds: int = 120

    # RabbitMQ settings
    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_user: str = "guest"
    rabbitmq_password: str = "guest"
    rabbitmq_vhost: str = "/"
    rabbitmq_exchange: str = "presale_events"

    # Outbox relay settings
    outbox_batch_size: int = 100

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_url = os.getenv("DB_URL")
        if not db_url:
            raise ValueError("DB_URL environment variable is required")

        return cls(
            db_url=db_url,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            clock=os.getenv("CLOCK", "system").lower(),
            venue=os.getenv("VENUE", "pool").lower(),
            native_asset=os.getenv("NATIVE_ASSET", "native"),
            # Blockchain settings
            rpc_url=os.getenv("RPC_URL", "http://127.0.0.1:8545"),
            chain_id=int(os.getenv("CHAIN_ID", "31337")),
            router_address=os.getenv("ROUTER_ADDRESS") or None,
            token_address=os.getenv("TOKEN_ADDRESS") or None,
            operator_address=os.getenv("OPERATOR_ADDRESS") or None,
            router_deadline_seconds=int(os.getenv("ROUTER_DEADLINE_SECONDS", "600")),
            receipt_timeout_seconds=int(os.getenv("RECEIPT_TIMEOUT_SECONDS", "120")),
            # RabbitMQ settings
            rabbitmq_host=os.getenv("RABBITMQ_HOST", "localhost"),
            rabbitmq_port=int(os.getenv("RABBITMQ_PORT", "5672")),
            rabbitmq_user=os.getenv("RABBITMQ_USER", "guest"),
            rabbitmq_password=os.getenv("RABBITMQ_PASSWORD", "guest"),
            rabbitmq_vhost=os.getenv("RABBITMQ_VHOST", "/"),
            rabbitmq_exchange=os.getenv("RABBITMQ_EXCHANGE", "presale_events"),
            # Outbox settings
            outbox_batch_size=int(os.getenv("OUTBOX_BATCH_SIZE", "100")),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.db_url:
            raise ValueError("db_url is required")
        if self.clock not in CLOCK_SOURCES:
            raise ValueError(f"clock must be one of {', '.join(CLOCK_SOURCES)}")
        if self.venue not in VENUE_KINDS:
            raise ValueError(f"venue must be one of {', '.join(VENUE_KINDS)}")
        if self.venue == "router" and not self.router_address:
            raise ValueError("router_address is required when venue is 'router'")
        if self.venue == "router" and not self.token_address:
            raise ValueError("token_address is required when venue is 'router'")
        if self.venue == "router" and not self.operator_address:
            raise ValueError("operator_address is required when venue is 'router'")
        if not self.native_asset:
            raise ValueError("native_asset is required")
        if self.router_deadline_seconds <= 0:
            raise ValueError("router_deadline_seconds must be > 0")
        if self.receipt_timeout_seconds <= 0:
            raise ValueError("receipt_timeout_seconds must be > 0")
        if self.rabbitmq_port <= 0:
            raise ValueError("rabbitmq_port must be > 0")
        if self.outbox_batch_size <= 0:
            raise ValueError("outbox_batch_size must be > 0")

    def get_rabbitmq_connection_params(self) -> dict:
        """Get RabbitMQ connection parameters as a dictionary."""
        return {
            "host": self.rabbitmq_host,
            "port": self.rabbitmq_port,
            "user": self.rabbitmq_user,
            "password": self.rabbitmq_password,
            "vhost": self.rabbitmq_vhost,
        }
