import copy
import itertools

import pytest

from blockchain.chain import LocalChain
from blockchain.client import LocalLotteryClient
from utils.config import DEFAULT_CONFIG


@pytest.fixture
def config():
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["lottery"].update({"randomness": "seeded", "seed": 7})
    cfg["chain"]["seed"] = "tests"
    return cfg


@pytest.fixture
def clock():
    ticks = itertools.count(1_700_000_000, 12)
    return lambda: next(ticks)


@pytest.fixture
def chain(config, clock):
    return LocalChain(config, clock=clock)


@pytest.fixture
def accounts(chain):
    return chain.accounts


@pytest.fixture
def lottery(chain, accounts):
    return chain.deploy_lottery(accounts[0])


@pytest.fixture
def local_client(chain, lottery, accounts):
    return LocalLotteryClient(chain, lottery, default_account=accounts[0])
