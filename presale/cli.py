"""Command line interface for the presale engine."""

import argparse
import sys
from typing import Callable, List, Optional

from presale.clock import Clock, FixedClock, SystemClock
from presale.config import Config
from presale.core.types import StreamKind
from presale.db.healthcheck import check_tables_exist
from presale.db.session import create_tables, get_session, init_db
from presale.errors import PresaleError
from presale.log import get_logger, setup_logging
from presale.messaging.routing import ALL_QUEUES, DLX_QUEUE_NAME
from presale.schema import load_deployment
from presale.services.campaign import CampaignSummary, PresaleCampaign
from presale.services.ledger import AssetLedger
from presale.utils.formatting import normalize_identity, timestamp_to_datetime, to_units
from presale.venues.base import LiquidityVenue
from presale.venues.pool import ConstantProductVenue

logger = get_logger(__name__)


class DeferredVenue:
    """Builds the configured venue on the first deposit.

    Reads and most mutations never reach the venue, so they must not need
    an RPC connection when the router venue is configured.
    """

    def __init__(self, build: Callable[[], LiquidityVenue]):
        self._build = build
        self._venue: Optional[LiquidityVenue] = None

    def add_liquidity(self, session, **kwargs):
        if self._venue is None:
            self._venue = self._build()
        return self._venue.add_liquidity(session, **kwargs)


class Runtime:
    """Collaborators selected by configuration, built on first use."""

    def __init__(self, config: Config, at: Optional[int] = None):
        self.config = config
        self.at = at
        self.ledger = AssetLedger()
        self._client = None

    @property
    def client(self):
        if self._client is None:
            from presale.eth.client import EthereumClient

            self._client = EthereumClient(self.config)
        return self._client

    def clock(self) -> Clock:
        if self.at is not None:
            return FixedClock(self.at)
        if self.config.clock == "chain":
            from presale.eth.client import ChainClock

            return ChainClock(self.client)
        return SystemClock()

    def venue(self) -> LiquidityVenue:
        if self.config.venue == "router":
            from presale.eth.router import RouterVenue

            return RouterVenue(
                self.client,
                self.ledger,
                router_address=self.config.router_address,
                token_address=self.config.token_address,
                operator_address=self.config.operator_address,
                deadline_seconds=self.config.router_deadline_seconds,
            )
        return ConstantProductVenue(self.ledger)

    def deferred_venue(self) -> "DeferredVenue":
        return DeferredVenue(self.venue)

    def campaign(self, address: str) -> PresaleCampaign:
        return PresaleCampaign(address, self.ledger, self.deferred_venue(), self.clock())


def _amount(value: str) -> int:
    """argparse type for base-unit amounts (plain integers, no decimals)."""
    try:
        amount = int(value, 10)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r} (base units, integer)")
    if amount < 0:
        raise argparse.ArgumentTypeError("amount must be >= 0")
    return amount


def _print_summary(summary: CampaignSummary) -> None:
    print(f"Campaign {summary.address}")
    print("-" * 50)
    print(f"  Token: {summary.token_name} ({summary.token_symbol}), supply {summary.total_supply}")
    print(f"  Admin: {summary.admin}")
    stage = summary.stage.value
    if summary.pending_transition:
        stage += " (deadline passed, transition pending)"
    print(f"  Stage: {stage}")
    if summary.start_time is not None:
        print(f"  Window: {timestamp_to_datetime(summary.start_time)} -> {timestamp_to_datetime(summary.deadline)}")
    print(
        f"  Raised: {summary.aggregate_contributed} ({to_units(summary.aggregate_contributed)} {summary.native_asset})"
        f" / soft cap {summary.soft_cap} / hard cap {summary.hard_cap}"
    )
    print(f"  Contribution bounds: {summary.min_contribution} .. {summary.max_contribution}")
    print(f"  ETH split: {summary.eth_split}")
    print(f"  Token split: {summary.token_split}")
    if summary.liquidity_pool:
        print(f"  Liquidity pool: {summary.liquidity_pool}")
    print("  Vesting streams:")
    for kind, stream in summary.streams.items():
        print(
            f"    {kind.value}: allocated {stream.total_allocated}, released {stream.released}, "
            f"withdrawable {stream.withdrawable} (cliff {stream.cliff}s, duration {stream.duration}s)"
        )


def db_init(config: Config) -> None:
    create_tables()
    print(f"Database ready: {config.db_url.split('@')[-1]}")


def db_check(config: Config) -> None:
    check_tables_exist()
    print("Database schema OK")


def deploy(runtime: Runtime, path: str) -> None:
    params = load_deployment(path)
    campaign = PresaleCampaign.deploy(
        params,
        runtime.ledger,
        runtime.deferred_venue(),
        runtime.clock(),
        native_asset=runtime.config.native_asset,
    )
    print(f"Deployed campaign: {campaign.address}")


def mint(runtime: Runtime, holder: str, amount: int, asset: Optional[str]) -> None:
    asset = asset or runtime.config.native_asset
    holder = normalize_identity(holder)
    with get_session() as session:
        runtime.ledger.mint(session, asset, holder, amount)
        balance = runtime.ledger.balance_of(session, asset, holder)
    print(f"Minted {amount} {asset} to {holder} (balance {balance})")


def events_publish(config: Config, limit: Optional[int]) -> None:
    from presale.messaging.outbox import OutboxRelay
    from presale.messaging.rabbitmq import RabbitMQConnection, RabbitMQPublisher

    with RabbitMQConnection.from_config(config) as broker:
        publisher = RabbitMQPublisher(broker)
        publisher.enable_confirm_delivery()
        relay = OutboxRelay(publisher)
        published = relay.publish_pending(limit or config.outbox_batch_size)
        print(f"Published {published} event(s), {relay.pending_count()} pending")


def broker_setup(config: Config) -> None:
    from presale.messaging.rabbitmq import RabbitMQConnection

    with RabbitMQConnection.from_config(config) as broker:
        broker.declare_topology()
    print(f"Declared exchange {config.rabbitmq_exchange} on {config.rabbitmq_host}:{config.rabbitmq_port}")
    print(f"  queues: {', '.join(ALL_QUEUES)}")
    print(f"  dead letters: {DLX_QUEUE_NAME}")


def broker_status(config: Config) -> None:
    from presale.messaging.rabbitmq import RabbitMQConnection

    with RabbitMQConnection.from_config(config) as broker:
        status = broker.queue_status()
    for queue_name, queue in status.items():
        if queue.error:
            print(f"{queue_name}: unavailable ({queue.error})")
        else:
            print(f"{queue_name}: {queue.messages} messages, {queue.consumers} consumers")


def broker_purge(config: Config, queue_name: str) -> None:
    from presale.messaging.rabbitmq import RabbitMQConnection

    with RabbitMQConnection.from_config(config) as broker:
        count = broker.purge_queue(queue_name)
    print(f"Purged {count} messages from {queue_name}")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Token presale engine",
        prog="python -m presale",
    )
    parser.add_argument("--at", type=int, help="Use this unix timestamp instead of the configured clock")
    parser.add_argument("--log-level", type=str, help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # db
    db_parser = subparsers.add_parser("db", help="Database commands")
    db_subparsers = db_parser.add_subparsers(dest="subcommand", help="Database subcommands")
    db_subparsers.add_parser("init", help="Create tables")
    db_subparsers.add_parser("check", help="Verify required tables exist")

    # deploy
    deploy_parser = subparsers.add_parser("deploy", help="Deploy a campaign from a JSON file")
    deploy_parser.add_argument("--file", "-f", type=str, required=True, help="Deployment file")

    def campaign_command(name: str, help_text: str, caller: bool = True) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--campaign", "-c", type=str, required=True, help="Campaign address")
        if caller:
            sub.add_argument("--caller", type=str, required=True, help="Identity performing the operation")
        return sub

    campaign_command("start", "Open the contribution window (administrator)")
    contribute_parser = campaign_command("contribute", "Contribute native asset")
    contribute_parser.add_argument("--amount", type=_amount, required=True, help="Amount in base units")
    campaign_command("claim-refund", "Reclaim a contribution after a failed raise")
    campaign_command("claim", "Claim presale tokens after a successful raise")
    withdraw_parser = campaign_command("withdraw", "Withdraw vested proceeds (administrator)")
    withdraw_parser.add_argument("kind", choices=[kind.value for kind in StreamKind], help="Vesting stream")
    campaign_command("reconcile", "Apply a due stage transition", caller=False)
    campaign_command("status", "Show campaign state", caller=False)

    # balance / mint
    balance_parser = subparsers.add_parser("balance", help="Show an asset balance")
    balance_parser.add_argument("--holder", type=str, required=True, help="Holder identity")
    balance_parser.add_argument("--asset", type=str, help="Asset id (defaults to the native asset)")

    mint_parser = subparsers.add_parser("mint", help="Credit native asset to a holder (test funding)")
    mint_parser.add_argument("--holder", type=str, required=True, help="Holder identity")
    mint_parser.add_argument("--amount", type=_amount, required=True, help="Amount in base units")
    mint_parser.add_argument("--asset", type=str, help="Asset id (defaults to the native asset)")

    # events
    events_parser = subparsers.add_parser("events", help="Event outbox commands")
    events_subparsers = events_parser.add_subparsers(dest="subcommand", help="Event subcommands")
    publish_parser = events_subparsers.add_parser("publish", help="Publish pending events to RabbitMQ")
    publish_parser.add_argument("--limit", type=int, help="Maximum events to publish")

    # broker
    broker_parser = subparsers.add_parser("broker", help="Broker management commands")
    broker_subparsers = broker_parser.add_subparsers(dest="subcommand", help="Broker subcommands")
    broker_subparsers.add_parser("setup", help="Set up exchanges and queues")
    broker_subparsers.add_parser("status", help="Show queue status")
    broker_purge_parser = broker_subparsers.add_parser("purge", help="Purge a queue")
    broker_purge_parser.add_argument("--queue", "-q", type=str, required=True, help="Queue name to purge")

    return parser


def run_command(args: argparse.Namespace, config: Config) -> None:
    """Dispatch one parsed command."""
    runtime = Runtime(config, at=args.at)

    if args.command == "db":
        if args.subcommand == "init":
            db_init(config)
        elif args.subcommand == "check":
            db_check(config)
        else:
            raise ValueError("Usage: python -m presale db {init|check}")
        return

    check_tables_exist()

    if args.command == "deploy":
        deploy(runtime, args.file)
    elif args.command == "start":
        runtime.campaign(args.campaign).start(args.caller)
        print("Presale started")
    elif args.command == "contribute":
        total = runtime.campaign(args.campaign).contribute(args.caller, args.amount)
        print(f"Contributed {args.amount}; total from {args.caller}: {total}")
    elif args.command == "claim-refund":
        refunded = runtime.campaign(args.campaign).claim_refund(args.caller)
        print(f"Refunded {refunded}")
    elif args.command == "claim":
        claimed = runtime.campaign(args.campaign).claim_tokens(args.caller)
        print(f"Claimed {claimed} tokens")
    elif args.command == "withdraw":
        amount = runtime.campaign(args.campaign).withdraw(args.caller, StreamKind(args.kind))
        print(f"Withdrew {amount} from the {args.kind} stream")
    elif args.command == "reconcile":
        stage = runtime.campaign(args.campaign).reconcile()
        print(f"Stage: {stage.value}")
    elif args.command == "status":
        _print_summary(runtime.campaign(args.campaign).summary())
    elif args.command == "balance":
        asset = args.asset or config.native_asset
        holder = normalize_identity(args.holder)
        with get_session() as session:
            balance = runtime.ledger.balance_of(session, asset, holder)
        print(f"{holder}: {balance} {asset}")
    elif args.command == "mint":
        mint(runtime, args.holder, args.amount, args.asset)
    elif args.command == "events":
        if args.subcommand != "publish":
            raise ValueError("Usage: python -m presale events publish [--limit N]")
        events_publish(config, args.limit)
    elif args.command == "broker":
        if args.subcommand == "setup":
            broker_setup(config)
        elif args.subcommand == "status":
            broker_status(config)
        elif args.subcommand == "purge":
            broker_purge(config, args.queue)
        else:
            raise ValueError("Usage: python -m presale broker {setup|status|purge}")


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Load config
    try:
        config = Config.from_env()
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config, args.log_level)
    init_db(config)

    try:
        run_command(args, config)
    except PresaleError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except LookupError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
