"""Async lottery clients.

`LocalLotteryClient` drives a ledger deployed on the in-process `LocalChain`;
`LotteryClient` drives the Solidity contract over JSON-RPC with web3.py. Both
expose the same coroutine surface so the engine and the CLI work with either.
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_account import Account
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError

from blockchain.chain import DeployedLottery, LocalChain, Receipt, TransactionReverted
from lottery.errors import REVERT_REASONS
from lottery.models import DrawResult
from utils.common import same_address
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ABI_PATH = Path(__file__).parent.parent.parent / "contracts" / "abi" / "Lottery.abi"


def _receipt_summary(receipt: Receipt) -> Dict[str, Any]:
    return {
        "status": receipt.status,
        "blockNumber": receipt.block_number,
        "transactionHash": receipt.tx_hash,
        "gasUsed": receipt.gas_used,
    }


class LocalLotteryClient:
    """Client for a ledger deployed on a `LocalChain`."""

    def __init__(self, chain: LocalChain, lottery: DeployedLottery, default_account: Optional[str] = None):
        self.chain = chain
        self.lottery = lottery
        self.contract_address = lottery.address
        self.default_account = default_account or lottery.manager

    @classmethod
    def deploy(cls, chain: LocalChain, manager_index: int = 0, **deploy_kwargs) -> "LocalLotteryClient":
        manager = chain.accounts[manager_index]
        lottery = chain.deploy_lottery(manager, **deploy_kwargs)
        return cls(chain, lottery, default_account=manager)

    async def initialize(self) -> None:
        logger.info("Using local lottery at %s (manager %s)", self.contract_address, self.lottery.manager)

    async def close(self) -> None:
        return None

    async def enter(self, value: int, sender: Optional[str] = None) -> Dict[str, Any]:
        receipt = await asyncio.to_thread(self.lottery.enter, sender or self.default_account, int(value))
        return _receipt_summary(receipt)

    async def pick_winner(self, sender: Optional[str] = None) -> DrawResult:
        receipt = await asyncio.to_thread(self.lottery.pick_winner, sender or self.default_account)
        event = next(evt for evt in receipt.events if evt.name == "WinnerPicked")
        return DrawResult(
            round_id=int(event.args["roundId"]),
            winner=event.args["winner"],
            prize=int(event.args["prize"]),
            tx_hash=receipt.tx_hash,
            gas_used=receipt.gas_used,
            block_number=receipt.block_number,
        )

    async def get_players(self) -> List[str]:
        return self.lottery.get_players()

    async def get_balance(self) -> int:
        return self.lottery.get_balance()

    async def get_manager(self) -> str:
        return self.lottery.manager

    async def get_minimum_entry(self) -> int:
        return self.lottery.minimum_entry

    async def get_round_id(self) -> int:
        return self.lottery.round_id

    async def get_account_balance(self, address: str) -> int:
        return self.chain.get_balance(address)

    def get_client_status(self) -> Dict[str, Any]:
        return {
            "backend": "local",
            "chainId": self.chain.chain_id,
            "contract": self.contract_address,
            "account": self.default_account,
            "blockNumber": self.chain.block_number,
        }


class LotteryClient:
    """Async-friendly wrapper around web3.py for a deployed Lottery contract."""

    def __init__(self, config: Dict[str, Any]):
        self._config = config

        blockchain_cfg = config.get("blockchain", {})
        self.rpc_url: str = blockchain_cfg.get("rpc_url") or "http://localhost:8545"
        self.rpc_timeout: float = float(blockchain_cfg.get("rpc_timeout") or 10.0)
        self.chain_id: int = int(blockchain_cfg.get("chain_id") or 1337)
        self.contract_address: Optional[str] = blockchain_cfg.get("contract_address")
        self.abi_path = Path(blockchain_cfg.get("abi_path") or DEFAULT_ABI_PATH)
        self.tx_timeout = int(config.get("operator", {}).get("tx_timeout_seconds") or 180)

        self._w3: Optional[Web3] = None
        self._contract: Optional[Contract] = None
        self.contract_abi: Optional[List[Dict[str, Any]]] = None

        private_key = blockchain_cfg.get("private_key")
        self.account = Account.from_key(private_key) if private_key else None
        if self.account:
            logger.info("Account loaded: %s", self.account.address)

        gas_price_setting = blockchain_cfg.get("gas_price")
        self._gas_price_override: Optional[int] = None
        if gas_price_setting:
            self._gas_price_override = Web3.to_wei(Decimal(str(gas_price_setting)), "gwei")

        self._gas_multiplier = float(blockchain_cfg.get("gas_multiplier") or 1.15)

    async def initialize(self) -> None:
        """Establish the RPC connection and load the contract."""
        self._w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.rpc_timeout}))
        if not self._w3.is_connected():  # pragma: no cover - depends on live RPC
            raise ConnectionError(f"Failed to connect to RPC at {self.rpc_url}")

        logger.info("Connected to RPC %s (chain id %s)", self.rpc_url, self.chain_id)

        actual_chain_id = self._w3.eth.chain_id
        if actual_chain_id != self.chain_id:
            logger.warning(f"Chain ID mismatch: expected {self.chain_id}, got {actual_chain_id}")

        await self._load_contract()

    async def close(self) -> None:
        """Tear down references; HTTP provider closes automatically."""
        self._contract = None
        self._w3 = None

    async def _load_contract(self) -> None:
        if not self.contract_address:
            raise ValueError("No contract address configured (blockchain.contract_address)")

        logger.info("Loading Lottery ABI from %s", self.abi_path)
        with self.abi_path.open("r", encoding="utf-8") as handle:
            self.contract_abi = json.load(handle)

        w3 = self._ensure_web3()
        self.contract_address = Web3.to_checksum_address(self.contract_address)

        code = await asyncio.to_thread(w3.eth.get_code, self.contract_address)
        if not code or code == b'\x00':
            logger.error(f"No contract code found at address {self.contract_address}")
            raise ValueError(f"No contract deployed at {self.contract_address}")

        self._contract = w3.eth.contract(address=self.contract_address, abi=self.contract_abi)
        logger.info("Contract bound at %s with %d bytes of code", self.contract_address, len(code))

    def _ensure_contract(self) -> Contract:
        if not self._contract:
            raise RuntimeError("Contract not initialised")
        return self._contract

    def _ensure_web3(self) -> Web3:
        if not self._w3:
            raise RuntimeError("Web3 provider not initialised")
        return self._w3

    async def _call_view(self, function_name: str, *args) -> Any:
        contract = self._ensure_contract()

        def _call():
            return getattr(contract.functions, function_name)(*args).call()

        return await asyncio.to_thread(_call)

    async def _send_transaction(self, function_name: str, *args, value: int = 0) -> Dict[str, Any]:
        """Sign, send and wait for a contract transaction; return the raw receipt."""
        if not self.account:
            raise ValueError("Account not configured (blockchain.private_key)")

        contract = self._ensure_contract()
        w3 = self._ensure_web3()

        def _send() -> Dict[str, Any]:
            tx_function = getattr(contract.functions, function_name)(*args)
            try:
                gas_estimate = tx_function.estimate_gas({"from": self.account.address, "value": value})
            except ContractLogicError as exc:
                raise TransactionReverted(_revert_reason(exc)) from exc

            gas_price = self._gas_price_override or w3.eth.gas_price
            txn = tx_function.build_transaction(
                {
                    "from": self.account.address,
                    "value": value,
                    "gas": int(gas_estimate * self._gas_multiplier),
                    "gasPrice": gas_price,
                    "nonce": w3.eth.get_transaction_count(self.account.address),
                    "chainId": self.chain_id,
                }
            )
            signed = self.account.sign_transaction(txn)
            # web3/eth-account releases disagree on the attribute name
            raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
            tx_hash = w3.eth.send_raw_transaction(raw)
            logger.info("Sent transaction %s for %s", _hex(tx_hash), function_name)
            return w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)

        receipt = await asyncio.to_thread(_send)
        if int(receipt["status"]) != 1:
            logger.error("Transaction %s for %s failed", _hex(receipt["transactionHash"]), function_name)
            raise TransactionReverted("transaction failed")
        return receipt

    def _check_sender(self, sender: Optional[str]) -> None:
        if sender and not (self.account and same_address(sender, self.account.address)):
            raise ValueError(f"RPC client can only send from {self.account.address if self.account else 'no account'}")

    async def enter(self, value: int, sender: Optional[str] = None) -> Dict[str, Any]:
        self._check_sender(sender)
        receipt = await self._send_transaction("enter", value=int(value))
        return {
            "status": int(receipt["status"]),
            "blockNumber": int(receipt["blockNumber"]),
            "transactionHash": _hex(receipt["transactionHash"]),
            "gasUsed": int(receipt["gasUsed"]),
        }

    async def pick_winner(self, sender: Optional[str] = None) -> DrawResult:
        self._check_sender(sender)
        receipt = await self._send_transaction("pickWinner")
        contract = self._ensure_contract()
        events = contract.events.WinnerPicked().process_receipt(receipt)
        if not events:
            raise RuntimeError(f"No WinnerPicked event in transaction {_hex(receipt['transactionHash'])}")
        args = events[0]["args"]
        return DrawResult(
            round_id=int(args["roundId"]),
            winner=args["winner"],
            prize=int(args["prize"]),
            tx_hash=_hex(receipt["transactionHash"]),
            gas_used=int(receipt["gasUsed"]),
            block_number=int(receipt["blockNumber"]),
        )

    async def get_players(self) -> List[str]:
        return list(await self._call_view("getPlayers"))

    async def get_balance(self) -> int:
        return int(await self._call_view("getBalance"))

    async def get_manager(self) -> str:
        return await self._call_view("manager")

    async def get_minimum_entry(self) -> int:
        return int(await self._call_view("minimumEntry"))

    async def get_round_id(self) -> int:
        return int(await self._call_view("roundId"))

    async def get_account_balance(self, address: str) -> int:
        w3 = self._ensure_web3()
        return int(await asyncio.to_thread(w3.eth.get_balance, Web3.to_checksum_address(address)))

    def get_client_status(self) -> Dict[str, Any]:
        return {
            "backend": "rpc",
            "rpcUrl": self.rpc_url,
            "chainId": self.chain_id,
            "contract": self.contract_address,
            "account": self.account.address if self.account else None,
        }


def _revert_reason(exc: ContractLogicError) -> str:
    text = str(getattr(exc, "message", None) or exc)
    for reason in REVERT_REASONS:
        if reason in text:
            return reason
    return text


def _hex(value: Any) -> str:
    if isinstance(value, str):
        return value
    text = value.hex()
    return text if text.startswith("0x") else f"0x{text}"
