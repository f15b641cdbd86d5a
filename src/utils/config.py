"""
Configuration Management
"""

import copy
import json
import os
from pathlib import Path
from typing import Dict, Any, Optional

from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent.parent.parent / "config" / "lottery.conf"

DEFAULT_CONFIG: Dict[str, Any] = {
    "lottery": {
        "minimum_entry": "0.01",  # ETH
        "randomness": "secure",   # secure | seeded | context
        "seed": None,
    },
    "chain": {
        "accounts": 10,
        "initial_balance": "100",  # ETH per account
        "gas_price": "20",         # gwei
        "block_gas_limit": 6721975,
        "chain_id": 1337,
        "seed": "lottery-ledger",
    },
    "blockchain": {
        "rpc_url": "http://localhost:8545",
        "rpc_timeout": 10.0,
        "chain_id": 1337,
        "contract_address": None,
        "private_key": None,
        "gas_price": None,         # gwei, None means ask the node
        "gas_multiplier": 1.15,
        "solc_version": "0.8.19",
    },
    "operator": {
        "round_check_interval": 30,  # seconds
        "min_participants": 1,
        "tx_timeout_seconds": 180,
        "history_size": 20,
        "feed_size": 100,
    },
}

# environment prefix -> config section
ENV_SECTIONS = {
    "LOTTERY_": "lottery",
    "CHAIN_": "chain",
    "BLOCKCHAIN_": "blockchain",
    "OPERATOR_": "operator",
}


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from defaults, a JSON file and environment variables"""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_file is None:
        config_file = os.getenv("LOTTERY_CONFIG_FILE") or DEFAULT_CONFIG_FILE
    config_file = Path(config_file)

    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config file {config_file}: {e}")
            raise
        _merge_sections(config, file_config)
        logger.info(f"Loaded configuration from {config_file}")
    else:
        logger.warning(f"Config file {config_file} not found. Using defaults and environment variables.")

    config = _apply_env_overrides(config)
    logger.debug(f"Effective configuration: {json.dumps(config, indent=2, default=str)}")

    return config


def _merge_sections(config: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    for section, values in overrides.items():
        if section in config and isinstance(config[section], dict) and isinstance(values, dict):
            config[section].update(values)
        else:
            config[section] = values


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        # Convert key from SECTION_KEY_NAME to section.key_name
        for prefix, section in ENV_SECTIONS.items():
            if key.startswith(prefix):
                name = key[len(prefix):].lower()
                break
        else:
            continue

        if not name or name == "config_file":
            continue
        config.setdefault(section, {})[name] = value

    return config


def save_config(config: Dict[str, Any], config_file: Optional[str] = None):
    """Save configuration to file"""
    config_file = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, 'w') as f:
        json.dump(config, f, indent=2)

    logger.info(f"Configuration saved to {config_file}")


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value
