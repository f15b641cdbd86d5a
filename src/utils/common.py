"""Common utility functions shared by the ledger, chain and CLI."""

from decimal import Decimal
from typing import Union

from web3 import Web3

Amount = Union[int, str, float, Decimal]


def shorten_eth_address(address: str) -> str:
    """Shorten an Ethereum address for display: '0x123456...abcd'.
    Returns the first 6 and last 4 characters, separated by '...'.
    Handles addresses with or without '0x' prefix.
    """
    if not address:
        return ""
    addr = address.lower()
    if addr.startswith("0x"):
        addr = addr[2:]
    # Always add 0x prefix
    if len(addr) < 10:
        return f"0x{addr}"  # too short to shorten, but ensure 0x
    return f"0x{addr[:6]}...{addr[-4:]}"


def to_wei(amount: Amount, unit: str = "ether") -> int:
    """Convert a human amount (string, float or Decimal) to wei."""
    return int(Web3.to_wei(Decimal(str(amount)), unit))


def from_wei(amount_wei: int, unit: str = "ether") -> Decimal:
    return Decimal(Web3.from_wei(int(amount_wei), unit))


def same_address(left: str, right: str) -> bool:
    """Compare two addresses ignoring checksum casing."""
    if not left or not right:
        return False
    return left.lower() == right.lower()
