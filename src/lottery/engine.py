"""
Lottery Engine - drives draws, keeps round history and an activity feed
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from lottery.errors import NoEntrants
from lottery.models import Activity, RoundSnapshot
from utils.common import from_wei, shorten_eth_address
from utils.logger import get_logger

logger = get_logger(__name__)


class LotteryEngine:
    """Operator for a lottery reached through a client.

    The client is either `LocalLotteryClient` or `LotteryClient`; the engine
    only relies on their shared coroutine surface.
    """

    def __init__(self, client, config: Dict[str, Any]):
        self.client = client
        self.config = config

        operator_config = config.get('operator', {})
        self.round_check_interval = float(operator_config.get('round_check_interval') or 30)
        self.min_participants = max(1, int(operator_config.get('min_participants') or 1))
        history_size = int(operator_config.get('history_size') or 20)
        feed_size = int(operator_config.get('feed_size') or 100)

        self.manager: Optional[str] = None
        self.minimum_entry: int = 0
        self.round_history: Deque[RoundSnapshot] = deque(maxlen=history_size)
        self.activities: Deque[Activity] = deque(maxlen=feed_size)
        self.is_running = False
        self._task: Optional[asyncio.Task] = None
        self._activity_seq = 0

    async def initialize(self):
        """Load the lottery's fixed parameters"""
        try:
            self.manager = await self.client.get_manager()
            self.minimum_entry = await self.client.get_minimum_entry()
        except Exception as e:
            logger.error(f"Failed to initialize lottery engine: {e}")
            raise

        logger.info("Lottery engine initialized:")
        logger.info(f"  Manager: {self.manager}")
        logger.info(f"  Minimum entry: {from_wei(self.minimum_entry)} ETH")
        logger.info(f"  Auto-draw threshold: {self.min_participants} participants every {self.round_check_interval}s")

    async def start(self):
        """Start the automatic draw loop"""
        if self.is_running:
            logger.warning("Lottery engine is already running")
            return

        self.is_running = True
        self._task = asyncio.create_task(self._automatic_round_manager())
        logger.info("Lottery engine started")

    async def stop(self):
        """Stop the automatic draw loop"""
        self.is_running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Lottery engine stopped")

    async def _automatic_round_manager(self):
        logger.info("Starting automatic round management")

        while self.is_running:
            await self._check_and_manage_rounds()
            await asyncio.sleep(self.round_check_interval)

    async def _check_and_manage_rounds(self) -> Optional[RoundSnapshot]:
        """Draw the current round once it has enough participants"""
        try:
            players = await self.client.get_players()
            if len(players) < self.min_participants:
                logger.debug(f"Round has {len(players)}/{self.min_participants} participants, waiting")
                return None

            logger.info(f"Round has {len(players)} participants, drawing winner")
            return await self.draw_current_round()

        except Exception as e:
            logger.error(f"Error checking and managing rounds: {e}")
            return None

    # =============== ROUND OPERATIONS ===============

    async def enter(self, value: int, sender: Optional[str] = None) -> Dict[str, Any]:
        """Enter the current round through the client and log the activity"""
        result = await self.client.enter(value, sender=sender)
        self._log_activity("entered", {
            "amount": value,
            "tx_hash": result["transactionHash"],
        }, address=sender or getattr(self.client, "default_account", None))
        return result

    async def draw_current_round(self) -> RoundSnapshot:
        """Pick the winner of the current round as the manager"""
        players = await self.client.get_players()
        if not players:
            raise NoEntrants("No entrants in the current round")

        try:
            result = await self.client.pick_winner()
        except Exception as e:
            logger.error(f"Error drawing current round: {e}")
            self._log_activity("draw_failed", {"error": str(e), "participants": len(players)})
            raise

        snapshot = RoundSnapshot(
            round_id=result.round_id,
            winner=result.winner,
            prize=result.prize,
            participant_count=len(players),
            tx_hash=result.tx_hash,
        )
        self.round_history.append(snapshot)

        self._log_activity("winner_picked", {
            "round_id": result.round_id,
            "prize": result.prize,
            "participants": len(players),
            "tx_hash": result.tx_hash,
        }, address=result.winner)

        logger.info(
            f"Round {result.round_id} completed. Winner: {shorten_eth_address(result.winner)} "
            f"won {from_wei(result.prize)} ETH"
        )
        return snapshot

    def _log_activity(self, activity_type: str, details: Dict[str, Any], address: Optional[str] = None):
        self._activity_seq += 1
        self.activities.append(Activity(
            activity_id=f"{activity_type}_{int(time.time() * 1000)}_{self._activity_seq}",
            activity_type=activity_type,
            details=details,
            timestamp=datetime.utcnow(),
            address=address,
        ))

    # =============== STATUS AND INFORMATION METHODS ===============

    async def get_current_round_info(self) -> Dict[str, Any]:
        players = await self.client.get_players()
        balance = await self.client.get_balance()
        return {
            "round_id": await self.client.get_round_id(),
            "players": players,
            "participant_count": len(players),
            "pot_wei": balance,
            "pot_eth": str(from_wei(balance)),
            "can_draw": len(players) >= self.min_participants,
        }

    def get_round_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent rounds first"""
        history = list(self.round_history)[-limit:]
        return [snapshot.to_dict() for snapshot in reversed(history)]

    def get_recent_activities(self, limit: int = 20) -> List[Dict[str, Any]]:
        recent = list(self.activities)[-limit:]
        return [
            {
                "activity_id": activity.activity_id,
                "type": activity.activity_type,
                "address": activity.address,
                "details": activity.details,
                "timestamp": activity.timestamp.isoformat(),
            }
            for activity in reversed(recent)
        ]

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "manager": self.manager,
            "minimum_entry": self.minimum_entry,
            "round_check_interval": self.round_check_interval,
            "min_participants": self.min_participants,
            "rounds_completed": len(self.round_history),
            "client": self.client.get_client_status(),
        }
