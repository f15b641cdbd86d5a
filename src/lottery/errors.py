"""Errors raised by the lottery ledger.

Every error rejects the whole operation and leaves the ledger untouched. The
``reason`` attribute is the short revert string shared with the Solidity
contract and the local chain.
"""

from __future__ import annotations

from typing import Optional


class LotteryError(Exception):
    """Base class for rejected ledger operations."""

    reason = "LotteryError"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.reason)


class InsufficientContribution(LotteryError):
    """`enter` was called with less than the minimum entry."""

    reason = "InsufficientContribution"

    def __init__(self, value: int, minimum: int):
        self.value = value
        self.minimum = minimum
        super().__init__(f"{self.reason}: sent {value} wei, minimum is {minimum} wei")


class Unauthorized(LotteryError):
    """`pick_winner` was called by someone other than the manager."""

    reason = "Unauthorized"

    def __init__(self, caller: str, manager: str):
        self.caller = caller
        self.manager = manager
        super().__init__(f"{self.reason}: {caller} is not the manager")


class NoEntrants(LotteryError):
    """`pick_winner` was called while nobody has entered the round."""

    reason = "NoEntrants"


REVERT_REASONS = {
    cls.reason: cls for cls in (InsufficientContribution, Unauthorized, NoEntrants)
}
