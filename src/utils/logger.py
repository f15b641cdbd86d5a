"""Logging setup for the lottery ledger.

`get_logger(name)` installs the console handler (and a file handler when
``LOG_FILE`` is set) on first use. ``LOG_LEVEL`` picks the level for our own
modules; web3's HTTP stack stays at WARNING unless ``LOG_LEVEL`` is DEBUG.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
NOISY_LOGGERS = ('web3', 'urllib3', 'asyncio')

_ready = False
_installed: List[logging.Handler] = []


def _build_handlers(level: int, log_file: str) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding='utf-8'))

    formatter = logging.Formatter(os.getenv('LOG_FORMAT', LOG_FORMAT))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logging(level_name: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger from arguments or LOG_LEVEL / LOG_FILE.

    Calling it again replaces the handlers installed by the previous call,
    so the CLI can reconfigure after loading `.env`.
    """
    global _ready

    level_name = (level_name or os.getenv('LOG_LEVEL', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = log_file if log_file is not None else os.getenv('LOG_FILE', '')

    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    root.setLevel(level)
    for handler in _build_handlers(level, log_file):
        root.addHandler(handler)
        _installed.append(handler)

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _ready = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not _ready:
        setup_logging()
    return logging.getLogger(name)
