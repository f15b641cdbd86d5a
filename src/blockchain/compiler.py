"""Compile contracts/Lottery.sol with py-solc-x."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import solcx

from utils.logger import get_logger

logger = get_logger(__name__)

CONTRACTS_DIR = Path(__file__).parent.parent.parent / "contracts"
DEFAULT_SOURCE = CONTRACTS_DIR / "Lottery.sol"
DEFAULT_COMPILED_DIR = CONTRACTS_DIR / "compiled"
DEFAULT_SOLC_VERSION = "0.8.19"


def ensure_solc(version: str = DEFAULT_SOLC_VERSION) -> None:
    """Install the requested solc release if missing and select it."""
    installed = {str(v) for v in solcx.get_installed_solc_versions()}
    if version not in installed:
        logger.info(f"Installing solc {version}")
        solcx.install_solc(version)
    solcx.set_solc_version(version)


def compile_contract(
    source: Optional[Path] = None,
    version: str = DEFAULT_SOLC_VERSION,
    contract_name: str = "Lottery",
) -> Dict[str, Any]:
    """Compile the contract and return its interface (`abi` and `bin`)."""
    contract_path = Path(source or DEFAULT_SOURCE)
    if not contract_path.exists():
        raise FileNotFoundError(f"Contract file not found: {contract_path}")

    ensure_solc(version)
    logger.info(f"Compiling {contract_path} with solc {version}")
    result = solcx.compile_files([str(contract_path)], output_values=['abi', 'bin'], optimize=True)

    key = f"{contract_path}:{contract_name}"
    if key not in result:
        # solc may report a normalised path; fall back to the contract name
        matches = [k for k in result if k.endswith(f":{contract_name}")]
        if not matches:
            raise KeyError(f"Contract {contract_name} not found in compiler output")
        key = matches[0]

    contract_interface = result[key]
    logger.info(f"Compiled {contract_name} ({len(contract_interface['abi'])} ABI entries)")
    return contract_interface


def write_artifacts(
    contract_interface: Dict[str, Any],
    output_dir: Optional[Path] = None,
    contract_name: str = "Lottery",
) -> Tuple[Path, Path]:
    """Write `<name>.abi` and `<name>.bin` for the deployer."""
    output_dir = Path(output_dir or DEFAULT_COMPILED_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)

    abi_file = output_dir / f"{contract_name}.abi"
    bin_file = output_dir / f"{contract_name}.bin"
    abi_file.write_text(json.dumps(contract_interface['abi'], indent=2))
    bin_file.write_text(contract_interface['bin'])

    logger.info(f"Artifacts written to {output_dir}")
    return abi_file, bin_file
