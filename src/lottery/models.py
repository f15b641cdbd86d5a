"""Core data models for the lottery ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, Optional


class LedgerState(IntEnum):
    """Per-round states of the ledger."""

    ACCEPTING = 0
    SETTLING = 1


@dataclass(frozen=True)
class CallContext:
    """Identity and attached value of a single ledger call."""

    caller: str
    value: int = 0


@dataclass(frozen=True)
class RoundResult:
    """Outcome of a successful `pick_winner`."""

    round_id: int
    winner: str
    prize: int
    entrant_count: int
    winner_index: int


@dataclass
class DrawResult:
    """A settled draw as seen by a client, including transaction metadata."""

    round_id: int
    winner: str
    prize: int
    tx_hash: str
    gas_used: int
    block_number: int


@dataclass
class RoundSnapshot:
    """Historical record of a settled round."""

    round_id: int
    winner: str
    prize: int
    participant_count: int
    tx_hash: str
    finished_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round_id": self.round_id,
            "winner": self.winner,
            "prize": self.prize,
            "participant_count": self.participant_count,
            "tx_hash": self.tx_hash,
            "finished_at": self.finished_at.isoformat(),
        }


@dataclass
class Activity:
    """Entry of the engine's activity feed."""

    activity_id: str
    activity_type: str  # "entered", "winner_picked", "draw_failed"
    details: Dict[str, Any]
    timestamp: datetime
    address: Optional[str] = None
