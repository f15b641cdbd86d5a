"""Lottery ledger: entrants, pooled value, winner selection and payout.

The ledger holds no ambient state. Every call receives the caller and the
attached value in a `CallContext`, payout goes through a transfer callable
supplied by the host, and winner selection asks an injected `RandomSource`.
"""

from __future__ import annotations

from threading import RLock
from typing import Callable, List, Optional

from lottery.errors import InsufficientContribution, NoEntrants, Unauthorized
from lottery.models import CallContext, LedgerState, RoundResult
from lottery.randomness import RandomSource, SecureRandomSource
from utils.common import same_address, shorten_eth_address, to_wei
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MINIMUM_ENTRY = to_wei("0.01")

Transfer = Callable[[str, int], None]


class LotteryLedger:
    """Single lottery instance, reused round after round."""

    def __init__(
        self,
        manager: str,
        minimum_entry: int = DEFAULT_MINIMUM_ENTRY,
        random_source: Optional[RandomSource] = None,
    ) -> None:
        if not manager:
            raise ValueError("manager address is required")
        if minimum_entry < 0:
            raise ValueError("minimum entry cannot be negative")

        self._manager = manager
        self._minimum_entry = int(minimum_entry)
        self._random = random_source or SecureRandomSource()
        self._lock = RLock()

        self._entrants: List[str] = []
        self._pooled_value = 0
        self._round_id = 1
        self._state = LedgerState.ACCEPTING

        logger.info(
            "Ledger created: manager=%s, minimum entry=%d wei",
            shorten_eth_address(manager),
            self._minimum_entry,
        )

    @property
    def manager(self) -> str:
        return self._manager

    @property
    def minimum_entry(self) -> int:
        return self._minimum_entry

    @property
    def round_id(self) -> int:
        return self._round_id

    @property
    def state(self) -> LedgerState:
        return self._state

    def enter(self, context: CallContext) -> None:
        """Add the caller to the current round with the attached value."""
        value = int(context.value)
        if value < self._minimum_entry:
            logger.warning(
                "Rejected entry from %s: %d wei below minimum %d wei",
                shorten_eth_address(context.caller),
                value,
                self._minimum_entry,
            )
            raise InsufficientContribution(value, self._minimum_entry)

        with self._lock:
            self._entrants.append(context.caller)
            self._pooled_value += value
            logger.debug(
                "Round %d: %s entered with %d wei (pool %d wei, %d entrants)",
                self._round_id,
                shorten_eth_address(context.caller),
                value,
                self._pooled_value,
                len(self._entrants),
            )

    def pick_winner(self, context: CallContext, transfer: Transfer) -> RoundResult:
        """Pay the whole pool to a randomly selected entrant and open a new round.

        `transfer(winner, amount)` must either move the funds or raise. When it
        raises, entrants and pool are left exactly as they were.
        """
        if not same_address(context.caller, self._manager):
            logger.warning("Rejected pick_winner from non-manager %s", shorten_eth_address(context.caller))
            raise Unauthorized(context.caller, self._manager)

        with self._lock:
            if not self._entrants:
                raise NoEntrants()

            entrant_count = len(self._entrants)
            index = self._random.randbelow(entrant_count)
            winner = self._entrants[index]
            prize = self._pooled_value

            self._state = LedgerState.SETTLING
            try:
                transfer(winner, prize)
            finally:
                self._state = LedgerState.ACCEPTING

            result = RoundResult(
                round_id=self._round_id,
                winner=winner,
                prize=prize,
                entrant_count=entrant_count,
                winner_index=index,
            )
            self._entrants = []
            self._pooled_value = 0
            self._round_id += 1

        logger.info(
            "Round %d settled: %s won %d wei among %d entrants",
            result.round_id,
            shorten_eth_address(winner),
            prize,
            entrant_count,
        )
        return result

    def get_players(self) -> List[str]:
        with self._lock:
            return list(self._entrants)

    def get_balance(self) -> int:
        with self._lock:
            return self._pooled_value
