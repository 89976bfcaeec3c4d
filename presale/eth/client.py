"""Web3 client for Ethereum RPC interactions."""

import time
from typing import Any, Dict, Optional, Sequence

from web3 import Web3
from web3.types import TxReceipt

from presale.config import Config
from presale.log import get_logger

logger = get_logger(__name__)


class EthereumClient:
    """Ethereum RPC client with retry logic."""

    def __init__(self, config: Config, web3: Optional[Web3] = None):
        """Initialize Web3 client.

        Args:
            config: Configuration object with RPC URL
            web3: Pre-built Web3 instance (tests, custom providers)
        """
        self.config = config
        self.web3 = web3 or Web3(Web3.HTTPProvider(config.rpc_url))

        # Verify connection
        if not self.web3.is_connected():
            raise ConnectionError(f"Failed to connect to RPC: {config.rpc_url}")

        logger.info(f"Connected to Ethereum RPC: {config.rpc_url}")

    def _with_retry(self, description: str, fn, max_retries: int = 3, retry_delay: float = 1.0):
        for attempt in range(max_retries):
            try:
                return fn()
            except Exception as e:
                if attempt < max_retries - 1:
                    logger.warning(
                        f"RPC error during {description} (attempt {attempt + 1}/{max_retries}): {e}. Retrying..."
                    )
                    time.sleep(retry_delay * (attempt + 1))
                else:
                    logger.error(f"Failed {description} after {max_retries} attempts: {e}")
                    raise

    def latest_timestamp(self) -> int:
        """Get the timestamp of the latest block.

        Returns:
            Unix timestamp of the chain head
        """
        block = self._with_retry("get_block(latest)", lambda: self.web3.eth.get_block("latest"))
        return int(block["timestamp"])

    def contract(self, address: str, abi: Sequence[Dict[str, Any]]) -> Any:
        """Get a contract instance bound to ``address``."""
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=list(abi))

    def wait_for_receipt(self, tx_hash: Any) -> TxReceipt:
        """Wait until a transaction is mined.

        Args:
            tx_hash: Transaction hash

        Returns:
            Transaction receipt
        """
        return self.web3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.config.receipt_timeout_seconds
        )


class ChainClock:
    """Clock reading the latest block timestamp.

    Block time never decreases on a canonical chain, which is the monotonic
    external clock the deadline checks need.
    """

    def __init__(self, client: EthereumClient):
        self.client = client

    def __call__(self) -> int:
        return self.client.latest_timestamp()
