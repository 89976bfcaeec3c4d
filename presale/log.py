"""Logging configuration for the presale engine."""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple

from presale.config import Config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("web3", "urllib3", "sqlalchemy.engine", "pika")


def setup_logging(config: Optional[Config] = None, log_level: Optional[str] = None) -> None:
    """Configure Python logging.

    Args:
        config: Config object (uses log_level from config if provided)
        log_level: Override log level (takes precedence over config)
    """
    level_str = (log_level or (config.log_level if config else "INFO")).upper()
    level = logging.getLevelName(level_str)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class CampaignLogger(logging.LoggerAdapter):
    """Prefixes every record with the campaign address it concerns."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['campaign']}] {msg}", kwargs


def get_campaign_logger(name: str, campaign_address: str) -> CampaignLogger:
    """Get a logger bound to one campaign.

    Args:
        name: Logger name (typically __name__)
        campaign_address: Campaign address added to each message

    Returns:
        Logger adapter
    """
    return CampaignLogger(logging.getLogger(name), {"campaign": campaign_address})
