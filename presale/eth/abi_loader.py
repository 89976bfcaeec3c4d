"""Bundled contract ABIs for the router venue."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from presale.log import get_logger

logger = get_logger(__name__)

ABI_DIR = Path(__file__).parent.parent / "abi"


@lru_cache(maxsize=None)
def load_abi(contract_name: str) -> tuple[Dict[str, Any], ...]:
    """Read ``abi/<contract_name>.json`` once per process.

    Raises:
        FileNotFoundError: No ABI is bundled under that name
        ValueError: The file is not a JSON list of ABI entries
    """
    abi_path = ABI_DIR / f"{contract_name}.json"
    if not abi_path.is_file():
        raise FileNotFoundError(f"No bundled ABI for {contract_name} at {abi_path.absolute()}")

    try:
        entries = json.loads(abi_path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"{abi_path.name} is not valid JSON: {e}") from e
    if not isinstance(entries, list):
        raise ValueError(f"{abi_path.name} must hold a list of ABI entries, got {type(entries).__name__}")

    logger.debug(f"{contract_name}: {len(entries)} ABI entries")
    return tuple(entries)


def get_router_abi() -> list[Dict[str, Any]]:
    return list(load_abi("UniswapV2Router02"))


def get_factory_abi() -> list[Dict[str, Any]]:
    return list(load_abi("UniswapV2Factory"))


def get_pair_abi() -> list[Dict[str, Any]]:
    return list(load_abi("UniswapV2Pair"))
