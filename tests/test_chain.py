import threading

import pytest

from blockchain.chain import (
    GAS_DEPLOY,
    GAS_ENTER,
    GAS_PER_ENTRANT,
    GAS_PICK_WINNER,
    GAS_TX_BASE,
    ChainError,
    InsufficientFunds,
    LocalChain,
    TransactionReverted,
    UnknownTransaction,
)
from lottery.randomness import ContextHashRandomSource
from utils.common import to_wei


def test_accounts_are_funded_and_deterministic(chain, config, clock):
    assert len(chain.accounts) == 10
    assert all(chain.get_balance(address) == to_wei("100") for address in chain.accounts)
    assert LocalChain(config, clock=clock).accounts == chain.accounts


def test_deploys_the_contract(chain, lottery, accounts):
    assert lottery.address.startswith("0x")
    assert lottery.address not in accounts
    assert lottery.manager == accounts[0]
    assert lottery.minimum_entry == to_wei("0.01")
    assert lottery.deployment_receipt.contract_address == lottery.address
    assert lottery.deployment_receipt.gas_used == GAS_TX_BASE + GAS_DEPLOY
    assert chain.get_contract(lottery.address) is lottery
    assert chain.get_balance(accounts[0]) == to_wei("100") - lottery.deployment_receipt.fee


def test_allows_one_account_to_enter(lottery, accounts):
    lottery.enter(accounts[0], to_wei("0.02"))

    players = lottery.get_players()
    assert players == [accounts[0]]
    assert lottery.get_balance() == to_wei("0.02")


def test_allows_multiple_accounts_to_enter(lottery, accounts):
    lottery.enter(accounts[0], to_wei("0.02"))
    lottery.enter(accounts[1], to_wei("0.03"))
    lottery.enter(accounts[2], to_wei("0.04"))

    assert lottery.get_players() == [accounts[0], accounts[1], accounts[2]]
    assert lottery.get_balance() == to_wei("0.09")


def test_requires_minimum_amount_of_ether_to_enter(chain, lottery, accounts):
    before = chain.get_balance(accounts[1])

    with pytest.raises(TransactionReverted) as excinfo:
        lottery.enter(accounts[1], 1000)

    receipt = excinfo.value.receipt
    assert excinfo.value.reason == "InsufficientContribution"
    assert receipt.status == 0
    assert lottery.get_players() == []
    assert chain.get_balance(lottery.address) == 0
    # gas is still paid, the attached value is not
    assert chain.get_balance(accounts[1]) == before - receipt.fee


def test_only_manager_can_call_pick_winner(chain, lottery, accounts):
    lottery.enter(accounts[2], to_wei("0.02"))

    with pytest.raises(TransactionReverted) as excinfo:
        lottery.pick_winner(accounts[1])

    assert excinfo.value.reason == "Unauthorized"
    assert lottery.get_players() == [accounts[2]]
    assert lottery.get_balance() == to_wei("0.02")
    assert chain.get_balance(lottery.address) == to_wei("0.02")


def test_pick_winner_without_entrants_reverts(lottery, accounts):
    with pytest.raises(TransactionReverted) as excinfo:
        lottery.pick_winner(accounts[0])
    assert excinfo.value.reason == "NoEntrants"


def test_sends_money_to_the_winner_and_resets_the_players_array(chain, lottery, accounts):
    lottery.enter(accounts[0], to_wei("3"))
    initial_balance = chain.get_balance(accounts[0])

    receipt = lottery.pick_winner(accounts[0])

    final_balance = chain.get_balance(accounts[0])
    difference = final_balance - initial_balance
    assert difference > to_wei("2.8")
    assert difference == to_wei("3") - receipt.fee
    assert lottery.get_balance() == 0
    assert lottery.get_players() == []
    assert chain.get_balance(lottery.address) == 0


def test_winner_receives_exact_pool_when_manager_pays_gas(chain, lottery, accounts):
    for index, amount in ((1, "0.02"), (2, "0.03"), (3, "0.04")):
        lottery.enter(accounts[index], to_wei(amount))
    before = {address: chain.get_balance(address) for address in accounts[1:4]}

    receipt = lottery.pick_winner(accounts[0])

    event = receipt.events[0]
    assert event.name == "WinnerPicked"
    assert event.args["prize"] == to_wei("0.09")
    assert event.args["roundId"] == 1
    winner = event.args["winner"]
    assert chain.get_balance(winner) - before[winner] == to_wei("0.09")
    assert receipt.gas_used == GAS_TX_BASE + GAS_PICK_WINNER + 3 * GAS_PER_ENTRANT
    assert lottery.round_id == 2


def test_contract_custody_tracks_pool(chain, lottery, accounts):
    lottery.enter(accounts[1], to_wei("0.5"))
    lottery.enter(accounts[2], to_wei("0.25"))
    assert chain.get_balance(lottery.address) == lottery.get_balance() == to_wei("0.75")


def test_enter_receipt_and_events(chain, lottery, accounts):
    receipt = lottery.enter(accounts[1], to_wei("0.02"))

    assert receipt.status == 1
    assert receipt.gas_used == GAS_TX_BASE + GAS_ENTER
    assert receipt.block_number == chain.block_number
    assert chain.get_receipt(receipt.tx_hash) is receipt
    assert receipt.events[0].name == "PlayerEntered"
    assert receipt.events[0].args == {"player": accounts[1], "amount": to_wei("0.02"), "roundId": 1}


def test_each_transaction_mines_a_block(chain, lottery, accounts):
    start = chain.block_number
    lottery.enter(accounts[1], to_wei("0.02"))
    lottery.enter(accounts[2], to_wei("0.02"))

    assert chain.block_number == start + 2
    assert chain.get_block(start + 2).timestamp > chain.get_block(start + 1).timestamp
    assert chain.get_block(start + 2).hash != chain.get_block(start + 1).hash


def test_out_of_gas_reverts_and_charges_the_limit(chain, lottery, accounts):
    before = chain.get_balance(accounts[1])

    with pytest.raises(TransactionReverted) as excinfo:
        lottery.enter(accounts[1], to_wei("0.02"), gas=30_000)

    assert excinfo.value.reason == "out of gas"
    assert excinfo.value.receipt.gas_used == 30_000
    assert chain.get_balance(accounts[1]) == before - 30_000 * chain.gas_price
    assert lottery.get_players() == []


def test_insufficient_funds_rejected_before_mining(config, clock):
    config["chain"]["initial_balance"] = "0.001"
    chain = LocalChain(config, clock=clock)
    block = chain.block_number

    with pytest.raises(InsufficientFunds):
        chain.deploy_lottery(chain.accounts[0])

    assert chain.block_number == block


def test_gas_limit_above_block_limit_is_rejected(chain, lottery, accounts):
    with pytest.raises(ChainError):
        lottery.enter(accounts[1], to_wei("0.02"), gas=chain.block_gas_limit + 1)


def test_unknown_receipt(chain):
    with pytest.raises(UnknownTransaction):
        chain.get_receipt("0xdeadbeef")


def test_context_randomness_uses_block_context(config, clock):
    config["lottery"]["randomness"] = "context"
    chain = LocalChain(config, clock=clock)
    lottery = chain.deploy_lottery(chain.accounts[0])
    assert isinstance(lottery.ledger._random, ContextHashRandomSource)

    for account in chain.accounts[1:5]:
        lottery.enter(account, to_wei("0.01"))
    receipt = lottery.pick_winner(chain.accounts[0])

    assert receipt.events[0].args["winner"] in chain.accounts[1:5]
    assert lottery.get_players() == []


def test_two_deployments_get_distinct_addresses(chain, accounts):
    first = chain.deploy_lottery(accounts[0])
    second = chain.deploy_lottery(accounts[0])
    assert first.address != second.address


def test_lowercase_sender_is_stored_checksummed(chain, lottery, accounts):
    receipt = lottery.enter(accounts[1].lower(), to_wei("0.02"))

    assert lottery.get_players() == [accounts[1]]
    assert receipt.events[0].args["player"] == accounts[1]

    receipt = lottery.pick_winner(accounts[0].lower())
    assert receipt.events[0].args["winner"] == accounts[1]


def test_required_gas_is_computed_under_the_chain_lock(chain, lottery, accounts):
    held_elsewhere = []

    def required_gas():
        def try_lock():
            acquired = chain._lock.acquire(blocking=False)
            if acquired:
                chain._lock.release()
            held_elsewhere.append(not acquired)

        worker = threading.Thread(target=try_lock)
        worker.start()
        worker.join()
        return GAS_TX_BASE + 1_000

    receipt = chain.transact(
        accounts[1],
        lottery.address,
        value=0,
        gas=None,
        required_gas=required_gas,
        action=lambda emit: None,
    )

    assert held_elsewhere == [True]
    assert receipt.gas_used == GAS_TX_BASE + 1_000


def test_pick_winner_gas_counts_entrants_at_execution(chain, lottery, accounts):
    for account in accounts[1:4]:
        lottery.enter(account, to_wei("0.01"))

    receipt = lottery.pick_winner(accounts[0])

    assert receipt.gas_used == GAS_TX_BASE + GAS_PICK_WINNER + 3 * GAS_PER_ENTRANT
