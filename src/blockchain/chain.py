"""In-process development chain hosting lottery ledgers.

Accounts are pre-funded and derived deterministically from a seed. Every
transaction is mined into its own block, the sender pays
``gas_used * gas_price`` whether the transaction succeeds or reverts, and
attached value only moves when the call succeeds.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from lottery.errors import LotteryError
from lottery.ledger import LotteryLedger
from lottery.models import CallContext, RoundResult
from lottery.randomness import BlockContext, RandomSource, build_random_source
from utils.common import shorten_eth_address, to_wei
from utils.config import DEFAULT_CONFIG
from utils.logger import get_logger

logger = get_logger(__name__)

# Gas schedule
GAS_TX_BASE = 21_000
GAS_DEPLOY = 350_000
GAS_ENTER = 44_000
GAS_PICK_WINNER = 30_000
GAS_PER_ENTRANT = 5_000

DEFAULT_TX_GAS = 1_000_000


class ChainError(Exception):
    """Base class for local chain failures."""


class InsufficientFunds(ChainError):
    """Sender cannot cover value plus the maximum gas cost."""


class UnknownTransaction(ChainError):
    """No receipt exists for the requested hash."""


class TransactionReverted(ChainError):
    """A mined transaction failed; gas was charged, nothing else changed."""

    def __init__(self, reason: str, receipt: Optional["Receipt"] = None):
        self.reason = reason
        self.receipt = receipt
        super().__init__(f"execution reverted: {reason}")


@dataclass(frozen=True)
class Block:
    number: int
    timestamp: int
    hash: str


@dataclass
class BlockchainEvent:
    """Lightweight representation of an emitted event."""

    name: str
    args: Dict[str, Any]
    block_number: int
    transaction_hash: str


@dataclass
class Receipt:
    tx_hash: str
    block_number: int
    sender: str
    to: Optional[str]
    value: int
    gas_used: int
    gas_price: int
    status: int
    contract_address: Optional[str] = None
    revert_reason: Optional[str] = None
    events: List[BlockchainEvent] = field(default_factory=list)

    @property
    def fee(self) -> int:
        return self.gas_used * self.gas_price


class DeployedLottery:
    """Handle on a ledger deployed at a chain address."""

    def __init__(self, chain: "LocalChain", address: str, ledger: LotteryLedger, receipt: Receipt):
        self.chain = chain
        self.address = address
        self.ledger = ledger
        self.deployment_receipt = receipt

    @property
    def manager(self) -> str:
        return self.ledger.manager

    @property
    def minimum_entry(self) -> int:
        return self.ledger.minimum_entry

    @property
    def round_id(self) -> int:
        return self.ledger.round_id

    def enter(self, sender: str, value: int, gas: Optional[int] = None) -> Receipt:
        sender = Web3.to_checksum_address(sender)

        def _enter(emit: Callable[[str, Dict[str, Any]], None]) -> None:
            round_id = self.ledger.round_id
            self.ledger.enter(CallContext(caller=sender, value=value))
            emit("PlayerEntered", {"player": sender, "amount": value, "roundId": round_id})

        return self.chain.transact(
            sender,
            self.address,
            value=value,
            gas=gas,
            required_gas=GAS_TX_BASE + GAS_ENTER,
            action=_enter,
        )

    def pick_winner(self, sender: str, gas: Optional[int] = None) -> Receipt:
        sender = Web3.to_checksum_address(sender)

        def _required_gas() -> int:
            return GAS_TX_BASE + GAS_PICK_WINNER + GAS_PER_ENTRANT * len(self.ledger.get_players())

        def _pick(emit: Callable[[str, Dict[str, Any]], None]) -> None:
            result: RoundResult = self.ledger.pick_winner(
                CallContext(caller=sender),
                lambda winner, amount: self.chain.pay_out(self.address, winner, amount),
            )
            emit("WinnerPicked", {"winner": result.winner, "prize": result.prize, "roundId": result.round_id})

        return self.chain.transact(
            sender,
            self.address,
            value=0,
            gas=gas,
            required_gas=_required_gas,
            action=_pick,
        )

    def get_players(self) -> List[str]:
        return self.ledger.get_players()

    def get_balance(self) -> int:
        return self.ledger.get_balance()


class LocalChain:
    """Automining development chain with deterministic funded accounts."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, clock: Callable[[], float] = time.time):
        self._config = config or DEFAULT_CONFIG
        chain_cfg = {**DEFAULT_CONFIG["chain"], **self._config.get("chain", {})}

        self.chain_id = int(chain_cfg["chain_id"])
        self.gas_price = to_wei(chain_cfg["gas_price"], "gwei")
        self.block_gas_limit = int(chain_cfg["block_gas_limit"])
        self._clock = clock
        self._lock = RLock()

        self._balances: Dict[str, int] = {}
        self._nonces: Dict[str, int] = {}
        self._accounts: List[LocalAccount] = []
        self._contracts: Dict[str, DeployedLottery] = {}
        self._receipts: Dict[str, Receipt] = {}

        initial_balance = to_wei(chain_cfg["initial_balance"])
        seed = str(chain_cfg["seed"])
        for index in range(int(chain_cfg["accounts"])):
            account = Account.from_key(Web3.keccak(text=f"{seed}:{index}"))
            self._accounts.append(account)
            self._balances[account.address] = initial_balance

        genesis_hash = Web3.keccak(text=f"{seed}:genesis").hex()
        self._blocks: List[Block] = [Block(number=0, timestamp=int(self._clock()), hash=_prefixed(genesis_hash))]

        logger.info(
            "Local chain ready: %d accounts funded with %s ETH, gas price %s gwei",
            len(self._accounts),
            chain_cfg["initial_balance"],
            chain_cfg["gas_price"],
        )

    # ------------------------------------------------------------------
    # Accounts and blocks
    # ------------------------------------------------------------------
    @property
    def accounts(self) -> List[str]:
        return [account.address for account in self._accounts]

    def get_account(self, index: int) -> LocalAccount:
        return self._accounts[index]

    def get_balance(self, address: str) -> int:
        with self._lock:
            return self._balances.get(Web3.to_checksum_address(address), 0)

    @property
    def block_number(self) -> int:
        return self._blocks[-1].number

    @property
    def latest_block(self) -> Block:
        return self._blocks[-1]

    def get_block(self, number: int) -> Block:
        return self._blocks[number]

    def get_receipt(self, tx_hash: str) -> Receipt:
        try:
            return self._receipts[tx_hash]
        except KeyError:
            raise UnknownTransaction(f"Transaction {tx_hash} not found") from None

    def get_contract(self, address: str) -> DeployedLottery:
        return self._contracts[Web3.to_checksum_address(address)]

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------
    def deploy_lottery(
        self,
        sender: str,
        minimum_entry: Optional[int] = None,
        gas: int = DEFAULT_TX_GAS,
        random_source: Optional[RandomSource] = None,
    ) -> DeployedLottery:
        """Deploy a new ledger with `sender` as its manager."""
        sender = Web3.to_checksum_address(sender)
        if minimum_entry is None:
            minimum_entry = to_wei(self._config.get("lottery", {}).get("minimum_entry", "0.01"))

        with self._lock:
            address = self._next_contract_address(sender)
            if random_source is None:
                random_source = build_random_source(self._config, lambda: self._block_context(address))

            deployed: Dict[str, DeployedLottery] = {}

            def _deploy(emit: Callable[[str, Dict[str, Any]], None]) -> None:
                ledger = LotteryLedger(sender, minimum_entry=minimum_entry, random_source=random_source)
                deployed["lottery"] = DeployedLottery(self, address, ledger, receipt=None)  # type: ignore[arg-type]

            receipt = self.transact(
                sender,
                None,
                value=0,
                gas=gas,
                required_gas=GAS_TX_BASE + GAS_DEPLOY,
                action=_deploy,
                contract_address=address,
            )
            lottery = deployed["lottery"]
            lottery.deployment_receipt = receipt
            self._contracts[address] = lottery
            self._balances.setdefault(address, 0)

        logger.info("Lottery deployed at %s by %s (gas used %d)", address, shorten_eth_address(sender), receipt.gas_used)
        return lottery

    def _next_contract_address(self, sender: str) -> str:
        nonce = self._nonces.get(sender, 0)
        digest = Web3.keccak(bytes.fromhex(sender[2:]) + nonce.to_bytes(8, "big"))
        return Web3.to_checksum_address(digest[-20:])

    def _block_context(self, address: str) -> BlockContext:
        block = self.latest_block
        return BlockContext(
            block_number=block.number,
            timestamp=block.timestamp,
            entrants=tuple(self._contracts[address].get_players()),
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def transact(
        self,
        sender: str,
        to: Optional[str],
        *,
        value: int,
        gas: Optional[int],
        required_gas: Union[int, Callable[[], int]],
        action: Callable[[Callable[[str, Dict[str, Any]], None]], None],
        contract_address: Optional[str] = None,
    ) -> Receipt:
        """Mine one transaction running `action` against contract `to`.

        `action` receives an `emit(name, args)` callback for events. Ledger
        errors and payout failures revert the transaction: value goes back to
        the sender, gas is still charged and `TransactionReverted` is raised.
        `required_gas` may be a callable; it is evaluated under the chain lock
        so state-dependent costs see the same state `action` runs against.
        """
        sender = Web3.to_checksum_address(sender)
        gas_limit = DEFAULT_TX_GAS if gas is None else int(gas)
        value = int(value)
        if value < 0:
            raise ValueError("value cannot be negative")

        with self._lock:
            if gas_limit > self.block_gas_limit:
                raise ChainError(f"gas limit {gas_limit} exceeds block gas limit {self.block_gas_limit}")

            balance = self._balances.get(sender, 0)
            upfront = value + gas_limit * self.gas_price
            if balance < upfront:
                raise InsufficientFunds(
                    f"{sender} has {balance} wei, needs {upfront} wei for value plus gas"
                )

            nonce = self._nonces.get(sender, 0)
            self._nonces[sender] = nonce + 1
            block = self._mine_block()
            tx_hash = _prefixed(
                Web3.keccak(
                    bytes.fromhex(sender[2:]) + nonce.to_bytes(8, "big") + block.number.to_bytes(8, "big")
                ).hex()
            )

            if callable(required_gas):
                required_gas = required_gas()
            out_of_gas = required_gas > gas_limit
            gas_used = gas_limit if out_of_gas else required_gas
            self._balances[sender] = balance - gas_used * self.gas_price

            receipt = Receipt(
                tx_hash=tx_hash,
                block_number=block.number,
                sender=sender,
                to=to,
                value=value,
                gas_used=gas_used,
                gas_price=self.gas_price,
                status=1,
                contract_address=contract_address,
            )
            self._receipts[tx_hash] = receipt

            if out_of_gas:
                raise self._revert(receipt, "out of gas")

            def emit(name: str, args: Dict[str, Any]) -> None:
                receipt.events.append(BlockchainEvent(name, dict(args), block.number, tx_hash))

            custody = to or contract_address
            self._move(sender, custody, value)
            try:
                action(emit)
            except (LotteryError, ChainError) as exc:
                self._move(custody, sender, value)
                receipt.events.clear()
                raise self._revert(receipt, getattr(exc, "reason", str(exc)))

            logger.debug(
                "Block %d: tx %s from %s to %s, value %d wei, gas %d",
                block.number,
                tx_hash,
                shorten_eth_address(sender),
                shorten_eth_address(to or contract_address or ""),
                value,
                gas_used,
            )
            return receipt

    def pay_out(self, contract: str, recipient: str, amount: int) -> None:
        """Transfer primitive handed to ledgers: move funds out of contract custody."""
        with self._lock:
            if self._balances.get(contract, 0) < amount:
                raise ChainError(f"contract {contract} cannot cover payout of {amount} wei")
            self._move(contract, Web3.to_checksum_address(recipient), amount)

    def _move(self, source: Optional[str], target: Optional[str], amount: int) -> None:
        if not amount:
            return
        self._balances[source] = self._balances.get(source, 0) - amount
        self._balances[target] = self._balances.get(target, 0) + amount

    def _revert(self, receipt: Receipt, reason: str) -> TransactionReverted:
        receipt.status = 0
        receipt.revert_reason = reason
        receipt.contract_address = None
        logger.info("Transaction %s reverted: %s", receipt.tx_hash, reason)
        return TransactionReverted(reason, receipt)

    def _mine_block(self) -> Block:
        parent = self._blocks[-1]
        number = parent.number + 1
        timestamp = max(parent.timestamp + 1, int(self._clock()))
        block_hash = Web3.keccak(
            bytes.fromhex(parent.hash[2:]) + number.to_bytes(8, "big") + timestamp.to_bytes(8, "big")
        ).hex()
        block = Block(number=number, timestamp=timestamp, hash=_prefixed(block_hash))
        self._blocks.append(block)
        return block


def _prefixed(hex_value: str) -> str:
    return hex_value if hex_value.startswith("0x") else f"0x{hex_value}"
