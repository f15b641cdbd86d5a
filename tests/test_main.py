import os

import pytest

import main
from utils.common import to_wei
from utils.logger import setup_logging


def test_parse_arguments_for_simulation():
    args = main.parse_arguments(["--rpc-url", "http://node:8545", "simulate", "--rounds", "2", "--seed", "x"])
    assert args.command == "simulate"
    assert args.rounds == 2
    assert args.players == 3
    assert args.seed == "x"
    assert args.rpc_url == "http://node:8545"


def test_command_is_required():
    with pytest.raises(SystemExit):
        main.parse_arguments([])


def test_build_config_applies_cli_overrides(tmp_path):
    args = main.parse_arguments([
        "--config", str(tmp_path / "missing.conf"),
        "--contract", "0x5FbDB2315678afecb367f032d93F642f64180aa3",
        "status",
    ])
    config = main.build_config(args)
    assert config["blockchain"]["contract_address"] == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    assert config["lottery"]["minimum_entry"] == "0.01"


async def test_simulation_pays_every_round(config, capsys):
    history = await main.run_simulation(config, rounds=3, players=4, seed="sim")

    assert [item["round_id"] for item in history] == [3, 2, 1]
    for item in history:
        assert item["participant_count"] == 4
        assert item["prize"] >= 4 * to_wei("0.01")
    assert "3 rounds completed" in capsys.readouterr().out


async def test_seeded_simulation_is_reproducible(config):
    first = await main.run_simulation(dict(config, lottery=dict(config["lottery"])), 2, 3, seed="same")
    second = await main.run_simulation(dict(config, lottery=dict(config["lottery"])), 2, 3, seed="same")
    assert [item["winner"] for item in first] == [item["winner"] for item in second]


async def test_simulation_rejects_too_many_players(config):
    with pytest.raises(ValueError):
        await main.run_simulation(config, rounds=1, players=10)


def test_main_runs_simulation(tmp_path, capsys):
    exit_code = main.main(["--config", str(tmp_path / "missing.conf"), "simulate", "--rounds", "1", "--seed", "1"])
    assert exit_code == 0
    assert "Winner" in capsys.readouterr().out


def test_main_reports_deploy_without_key(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("BLOCKCHAIN_PRIVATE_KEY", raising=False)
    exit_code = main.main(["--config", str(tmp_path / "missing.conf"), "deploy"])
    assert exit_code == 1
    assert "private key" in capsys.readouterr().out


@pytest.fixture
def restore_environment():
    saved = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(saved)
    setup_logging()


def test_main_honours_log_file_from_dotenv(tmp_path, monkeypatch, restore_environment):
    monkeypatch.delenv("LOG_FILE", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("LOG_FILE=ledger.log\n")

    exit_code = main.main(["--config", str(tmp_path / "missing.conf"), "simulate", "--rounds", "1", "--seed", "1"])

    assert exit_code == 0
    log_file = tmp_path / "ledger.log"
    assert log_file.exists()
    assert "Round 1 completed" in log_file.read_text()
