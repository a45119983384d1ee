from __future__ import annotations

import json

import pytest

from fallback_scorer import generate_fallback_score
import trustgate_cli
from trustgate_cli import EXIT_USAGE, main

from conftest import OTHER, SUBJECT


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "ETHERSCAN_NETWORK",
        "TRUSTGATE_BYPASS_THRESHOLD",
        "TRUSTGATE_EASY_THRESHOLD",
        "TRUSTGATE_BATCH_SIZE",
        "TRUSTGATE_CACHE_TTL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_offline_single_address(capsys):
    assert main(["--offline", SUBJECT]) == 0

    payload = json.loads(capsys.readouterr().out)
    result = payload[SUBJECT]
    assert result["data_source"] == "fallback"
    assert result["score"] == generate_fallback_score(SUBJECT)
    assert result["wallet_data"]["address"] == SUBJECT


def test_offline_batch(capsys):
    assert main(["--offline", SUBJECT, OTHER, SUBJECT]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert sorted(payload) == sorted([SUBJECT, OTHER])


def test_unknown_network_is_a_usage_error(capsys):
    assert main(["--offline", "--network", "moonbase", SUBJECT]) == EXIT_USAGE

    assert "unknown network" in capsys.readouterr().err


def test_empty_address_is_a_usage_error(capsys):
    assert main(["--offline", " "]) == EXIT_USAGE

    assert "non-empty" in capsys.readouterr().err


def test_bad_environment_is_a_usage_error(monkeypatch, capsys):
    monkeypatch.setenv("TRUSTGATE_BATCH_SIZE", "many")

    assert main(["--offline", SUBJECT]) == EXIT_USAGE
    assert "TRUSTGATE_BATCH_SIZE" in capsys.readouterr().err


def test_cli_options_reach_settings(monkeypatch):
    captured = {}

    async def fake_run(args, settings):
        captured["settings"] = settings
        return {}

    monkeypatch.setattr(trustgate_cli, "run", fake_run)

    assert main(["--api-key", "KEY", "--network", "Polygon", SUBJECT]) == 0
    assert captured["settings"].ledger.api_key == "KEY"
    assert captured["settings"].ledger.chain_id == 137


@pytest.mark.parametrize("ttl", ["0", "-3"])
def test_non_positive_ttl_is_a_usage_error(ttl, capsys):
    assert main(["--offline", "--ttl", ttl, SUBJECT]) == EXIT_USAGE

    assert "ttl_override must be positive" in capsys.readouterr().err
