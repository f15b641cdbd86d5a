"""Random sources used to pick a winner index.

The ledger never generates entropy itself; it asks an injected source for an
index in ``[0, n)``.
"""

from __future__ import annotations

import random
import secrets
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from web3 import Web3

from utils.logger import get_logger

logger = get_logger(__name__)


class RandomSource(Protocol):
    def randbelow(self, n: int) -> int:
        ...


def _check_bound(n: int) -> None:
    if n <= 0:
        raise ValueError(f"upper bound must be positive, got {n}")


class SecureRandomSource:
    """Operating-system entropy via `secrets`."""

    def randbelow(self, n: int) -> int:
        _check_bound(n)
        return secrets.randbelow(n)


class SeededRandomSource:
    """Deterministic source, reproducible from its seed."""

    def __init__(self, seed: Any = None):
        self.seed = seed
        self._random = random.Random(seed)

    def randbelow(self, n: int) -> int:
        _check_bound(n)
        return self._random.randrange(n)


@dataclass(frozen=True)
class BlockContext:
    """Execution context values a contract can read when it runs."""

    block_number: int
    timestamp: int
    entrants: Sequence[str] = ()


class ContextHashRandomSource:
    """keccak256(block number, timestamp, entrants) mod n.

    Mirrors the classic on-chain pattern. Anyone who controls the block
    context can predict or steer the result, so use it only for parity with
    deployed contracts.
    """

    def __init__(self, context_provider: Callable[[], BlockContext]):
        self._context_provider = context_provider

    def randbelow(self, n: int) -> int:
        _check_bound(n)
        context = self._context_provider()
        payload = context.block_number.to_bytes(32, "big") + context.timestamp.to_bytes(32, "big")
        for address in context.entrants:
            # encodePacked pads array elements to 32 bytes
            payload += bytes(12) + bytes.fromhex(address[2:] if address.startswith("0x") else address)
        digest = Web3.keccak(payload)
        return int.from_bytes(digest, "big") % n


def build_random_source(
    config: Dict[str, Any],
    context_provider: Optional[Callable[[], BlockContext]] = None,
) -> RandomSource:
    """Create the random source selected by `lottery.randomness`."""
    lottery_cfg = config.get("lottery", {})
    kind = str(lottery_cfg.get("randomness") or "secure").lower()

    if kind == "secure":
        return SecureRandomSource()
    if kind == "seeded":
        seed = lottery_cfg.get("seed")
        logger.info("Using seeded random source (seed=%s)", seed)
        return SeededRandomSource(seed)
    if kind == "context":
        if context_provider is None:
            raise ValueError("context randomness needs a block context provider")
        logger.warning("Using block-context randomness; winners are predictable by block producers")
        return ContextHashRandomSource(context_provider)
    raise ValueError(f"Unknown randomness source '{kind}'")
