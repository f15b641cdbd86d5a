import asyncio

import pytest

from blockchain.chain import TransactionReverted
from lottery.engine import LotteryEngine
from lottery.errors import NoEntrants
from utils.common import to_wei


@pytest.fixture
async def engine(local_client, config):
    config["operator"].update({"round_check_interval": 0.01, "min_participants": 2, "history_size": 2})
    engine = LotteryEngine(local_client, config)
    await engine.initialize()
    yield engine
    await engine.stop()


async def test_initialize_loads_contract_parameters(engine, accounts):
    assert engine.manager == accounts[0]
    assert engine.minimum_entry == to_wei("0.01")
    assert engine.get_status()["client"]["backend"] == "local"


async def test_draw_records_history_and_activity(engine, accounts):
    await engine.enter(to_wei("0.02"), sender=accounts[1])
    await engine.enter(to_wei("0.03"), sender=accounts[2])

    snapshot = await engine.draw_current_round()

    assert snapshot.round_id == 1
    assert snapshot.prize == to_wei("0.05")
    assert snapshot.participant_count == 2
    assert snapshot.winner in accounts[1:3]
    history = engine.get_round_history()
    assert [item["round_id"] for item in history] == [1]
    activities = engine.get_recent_activities()
    assert [item["type"] for item in activities] == ["winner_picked", "entered", "entered"]
    assert activities[0]["address"] == snapshot.winner
    assert activities[-1]["address"] == accounts[1]


async def test_draw_refuses_empty_round(engine, chain):
    block = chain.block_number
    with pytest.raises(NoEntrants):
        await engine.draw_current_round()
    assert chain.block_number == block


async def test_failed_draw_is_logged_and_raised(local_client, config, accounts):
    local_client.default_account = accounts[3]
    engine = LotteryEngine(local_client, config)
    await engine.enter(to_wei("0.02"), sender=accounts[1])

    with pytest.raises(TransactionReverted):
        await engine.draw_current_round()

    assert engine.get_recent_activities()[0]["type"] == "draw_failed"
    assert engine.get_round_history() == []


async def test_history_is_bounded_and_most_recent_first(engine, accounts):
    for _ in range(3):
        await engine.enter(to_wei("0.01"), sender=accounts[1])
        await engine.draw_current_round()

    assert [item["round_id"] for item in engine.get_round_history()] == [3, 2]


async def test_current_round_info(engine, accounts):
    await engine.enter(to_wei("0.02"), sender=accounts[1])

    info = await engine.get_current_round_info()

    assert info["round_id"] == 1
    assert info["players"] == [accounts[1]]
    assert info["pot_wei"] == to_wei("0.02")
    assert info["pot_eth"] == "0.02"
    assert info["can_draw"] is False


async def test_check_waits_for_min_participants(engine, accounts):
    await engine.enter(to_wei("0.02"), sender=accounts[1])
    assert await engine._check_and_manage_rounds() is None

    await engine.enter(to_wei("0.02"), sender=accounts[2])
    snapshot = await engine._check_and_manage_rounds()
    assert snapshot is not None
    assert snapshot.participant_count == 2


async def test_automatic_loop_draws_rounds(engine, local_client, accounts):
    await engine.enter(to_wei("0.02"), sender=accounts[1])
    await engine.enter(to_wei("0.02"), sender=accounts[2])

    await engine.start()
    for _ in range(100):
        if engine.round_history:
            break
        await asyncio.sleep(0.01)
    await engine.stop()

    assert len(engine.round_history) == 1
    assert await local_client.get_players() == []
    assert engine.is_running is False
