#!/usr/bin/env python3
"""
Lottery Ledger Management Tool
Simulate rounds on a local chain, compile and deploy the contract, and
operate a deployed lottery over JSON-RPC.
"""

import argparse
import asyncio
import random
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import find_dotenv, load_dotenv

# .env must be in the environment before the package modules configure logging
load_dotenv(find_dotenv(usecwd=True))

from eth_account import Account  # noqa: E402
from web3 import Web3  # noqa: E402

from blockchain.chain import ChainError, LocalChain  # noqa: E402
from blockchain.client import LocalLotteryClient, LotteryClient  # noqa: E402
from blockchain.compiler import DEFAULT_COMPILED_DIR, compile_contract, write_artifacts  # noqa: E402
from blockchain.deploy import ContractDeployer, save_deployment_info  # noqa: E402
from lottery.engine import LotteryEngine  # noqa: E402
from lottery.errors import LotteryError  # noqa: E402
from utils.common import from_wei, shorten_eth_address, to_wei  # noqa: E402
from utils.config import get_config_value, load_config  # noqa: E402
from utils.logger import get_logger, setup_logging  # noqa: E402

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Lottery ledger - simulate, compile, deploy and operate")
    parser.add_argument("--config", help="Path to JSON config file (default: config/lottery.conf)")
    parser.add_argument("--rpc-url", help="Blockchain RPC URL")
    parser.add_argument("--private-key", help="Account private key for RPC transactions")
    parser.add_argument("--contract", help="Deployed Lottery contract address")

    sub = parser.add_subparsers(dest="command", required=True)

    simulate = sub.add_parser("simulate", help="Play rounds on an in-process local chain")
    simulate.add_argument("--rounds", type=int, default=3, help="Number of rounds (default: 3)")
    simulate.add_argument("--players", type=int, default=3, help="Entrants per round (default: 3)")
    simulate.add_argument("--seed", help="Seed for entrant amounts and winner selection")

    compile_cmd = sub.add_parser("compile", help="Compile contracts/Lottery.sol with solc")
    compile_cmd.add_argument("--output", default=str(DEFAULT_COMPILED_DIR), help="Artifact output directory")

    deploy = sub.add_parser("deploy", help="Deploy compiled artifacts over RPC")
    deploy.add_argument("--minimum-entry", help="Minimum entry in ETH (default: lottery.minimum_entry)")
    deploy.add_argument("--artifacts", default=str(DEFAULT_COMPILED_DIR), help="Compiled artifact directory")
    deploy.add_argument("--output", default="deployment.json", help="Deployment record output path")

    sub.add_parser("status", help="Show manager, round, players and pot")

    enter = sub.add_parser("enter", help="Enter the current round")
    enter.add_argument("--amount", required=True, help="Amount in ETH")

    sub.add_parser("pick-winner", help="Pick the winner of the current round (manager only)")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Dict[str, Any]:
    config = load_config(args.config)
    blockchain_cfg = config.setdefault("blockchain", {})
    if args.rpc_url:
        blockchain_cfg["rpc_url"] = args.rpc_url
    if args.private_key:
        blockchain_cfg["private_key"] = args.private_key
    if args.contract:
        blockchain_cfg["contract_address"] = args.contract
    return config


async def run_simulation(config: Dict[str, Any], rounds: int, players: int, seed: Optional[str] = None) -> List[Dict[str, Any]]:
    """Play `rounds` rounds with `players` entrants each on a fresh local chain"""
    if seed is not None:
        config.setdefault("lottery", {}).update({"randomness": "seeded", "seed": seed})
    chain = LocalChain(config)
    if players >= len(chain.accounts):
        raise ValueError(f"At most {len(chain.accounts) - 1} players fit on a chain with {len(chain.accounts)} accounts")

    client = LocalLotteryClient.deploy(chain)
    engine = LotteryEngine(client, config)
    await engine.initialize()

    amounts = random.Random(seed)
    minimum = engine.minimum_entry
    print(f"🎲 Lottery deployed at {client.contract_address}")
    print(f"📍 Manager: {engine.manager}")
    print(f"💸 Minimum entry: {from_wei(minimum)} ETH")

    for _ in range(rounds):
        for account in chain.accounts[1:players + 1]:
            value = minimum + amounts.randrange(0, 10) * minimum
            await engine.enter(value, sender=account)
        info = await engine.get_current_round_info()
        print(f"\n🎯 Round {info['round_id']}: {info['participant_count']} players, pot {info['pot_eth']} ETH")
        snapshot = await engine.draw_current_round()
        print(f"🏆 Winner: {shorten_eth_address(snapshot.winner)} won {from_wei(snapshot.prize)} ETH")

    print(f"\n✅ {rounds} rounds completed")
    return engine.get_round_history(limit=rounds)


async def run_rpc_command(config: Dict[str, Any], args: argparse.Namespace) -> None:
    client = LotteryClient(config)
    await client.initialize()
    try:
        if args.command == "status":
            manager = await client.get_manager()
            players = await client.get_players()
            balance = await client.get_balance()
            print(f"📍 Contract: {client.contract_address}")
            print(f"👤 Manager: {manager}")
            print(f"🎯 Round: {await client.get_round_id()}")
            print(f"💸 Minimum entry: {from_wei(await client.get_minimum_entry())} ETH")
            print(f"👥 Players ({len(players)}): {', '.join(players) or '-'}")
            print(f"💰 Pot: {from_wei(balance)} ETH")
        elif args.command == "enter":
            result = await client.enter(to_wei(args.amount))
            print(f"✅ Entered with {args.amount} ETH (tx {result['transactionHash']})")
        elif args.command == "pick-winner":
            result = await client.pick_winner()
            print(f"🏆 Round {result.round_id}: {result.winner} won {from_wei(result.prize)} ETH (tx {result.tx_hash})")
    finally:
        await client.close()


def run_deploy(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    private_key = get_config_value(config, "blockchain.private_key")
    if not private_key:
        raise ValueError("A private key is required to deploy (--private-key or BLOCKCHAIN_PRIVATE_KEY)")

    rpc_url = get_config_value(config, "blockchain.rpc_url")
    w3 = Web3(Web3.HTTPProvider(rpc_url))
    account = Account.from_key(private_key)
    minimum_entry = args.minimum_entry or get_config_value(config, "lottery.minimum_entry", "0.01")

    deployer = ContractDeployer(w3, account, config, compiled_dir=Path(args.artifacts))
    deployment = deployer.deploy(to_wei(minimum_entry))
    save_deployment_info(deployment, Path(args.output))
    print(f"✅ Contract deployed at: {deployment['contract_address']}")
    return deployment


def main(argv: Optional[List[str]] = None) -> int:
    # pick up a .env in the working directory even if this module was imported earlier
    load_dotenv(find_dotenv(usecwd=True))
    setup_logging()
    args = parse_arguments(argv)
    config = build_config(args)

    try:
        if args.command == "simulate":
            asyncio.run(run_simulation(config, args.rounds, args.players, args.seed))
        elif args.command == "compile":
            version = get_config_value(config, "blockchain.solc_version", "0.8.19")
            abi_file, bin_file = write_artifacts(compile_contract(version=version), Path(args.output))
            print(f"✅ Compiled: {abi_file}, {bin_file}")
        elif args.command == "deploy":
            run_deploy(config, args)
        else:
            asyncio.run(run_rpc_command(config, args))
    except (LotteryError, ChainError, ValueError, ConnectionError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"❌ Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
