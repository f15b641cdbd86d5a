"""
Lottery contract deployment over JSON-RPC
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from eth_account.signers.local import LocalAccount
from web3 import Web3

from blockchain.compiler import DEFAULT_COMPILED_DIR
from utils.common import from_wei, to_wei
from utils.logger import get_logger

logger = get_logger(__name__)

DEPLOYMENT_GAS = 1_000_000


class DeploymentError(Exception):
    """Deployment transaction failed or prerequisites were not met."""


class ContractDeployer:
    """Deploys compiled Lottery artifacts and records the deployment"""

    def __init__(self, web3_instance: Web3, account: LocalAccount, config: Dict[str, Any],
                 compiled_dir: Optional[Path] = None):
        self.w3 = web3_instance
        self.account = account
        self.config = config
        self.compiled_dir = Path(compiled_dir or DEFAULT_COMPILED_DIR)

    def load_artifacts(self, contract_name: str = "Lottery") -> Tuple[str, List[Dict[str, Any]]]:
        """Load contract bytecode and ABI from compiled artifacts"""
        bin_file = self.compiled_dir / f"{contract_name}.bin"
        abi_file = self.compiled_dir / f"{contract_name}.abi"

        if not bin_file.exists():
            raise FileNotFoundError(f"Contract bytecode not found: {bin_file}")
        if not abi_file.exists():
            raise FileNotFoundError(f"Contract ABI not found: {abi_file}")

        bytecode = bin_file.read_text().strip()
        if not bytecode:
            raise ValueError("Contract bytecode is empty")
        if not bytecode.startswith('0x'):
            bytecode = '0x' + bytecode

        try:
            abi = json.loads(abi_file.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in ABI file: {e}") from e

        logger.info(f"Loaded contract artifacts for {contract_name}")
        return bytecode, abi

    def check_requirements(self) -> int:
        """Return the deployer balance, failing when it cannot pay for gas"""
        if not self.w3.is_connected():
            raise DeploymentError("Not connected to blockchain network")

        balance = self.w3.eth.get_balance(self.account.address)
        logger.info(f"Deployer account: {self.account.address}")
        logger.info(f"Account balance: {from_wei(balance)} ETH")

        if balance == 0:
            raise DeploymentError("Insufficient balance for contract deployment")
        if balance < to_wei("0.01"):
            logger.warning(f"Low balance: {from_wei(balance)} ETH. Deployment may fail due to insufficient gas.")
        return balance

    def deploy(self, minimum_entry_wei: int, contract_name: str = "Lottery") -> Dict[str, Any]:
        """Deploy the contract and return its deployment record"""
        bytecode, abi = self.load_artifacts(contract_name)
        self.check_requirements()

        chain_id = self.w3.eth.chain_id
        contract = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        transaction = contract.constructor(int(minimum_entry_wei)).build_transaction({
            'from': self.account.address,
            'nonce': self.w3.eth.get_transaction_count(self.account.address),
            'gas': DEPLOYMENT_GAS,
            'gasPrice': self.w3.eth.gas_price,
            'chainId': chain_id,
        })

        signed = self.account.sign_transaction(transaction)
        raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
        tx_hash = self.w3.eth.send_raw_transaction(raw)
        logger.info(f"Deployment transaction sent: {tx_hash.hex()}")

        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt["status"] != 1:
            raise DeploymentError(f"Contract deployment failed. Transaction hash: {tx_hash.hex()}")

        contract_address = receipt["contractAddress"]
        logger.info(f"Contract deployed successfully at: {contract_address} (gas used {receipt['gasUsed']})")

        return {
            "contract_address": contract_address,
            "manager": self.account.address,
            "minimum_entry_wei": int(minimum_entry_wei),
            "transaction_hash": tx_hash.hex(),
            "block_number": int(receipt["blockNumber"]),
            "gas_used": int(receipt["gasUsed"]),
            "chain_id": chain_id,
            "abi": abi,
            "timestamp": int(time.time()),
        }


def save_deployment_info(deployment: Dict[str, Any], output_path: Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        json.dump(deployment, f, indent=2)
    logger.info(f"Deployment info saved to: {output_path}")
    return output_path
