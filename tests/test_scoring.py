from __future__ import annotations

import pytest

from activity_analysis import no_activity_flag
from scoring import calculate_score, clamp_score, determine_verification_mode, get_trust_level
from trustgate_models import (
    ReputationConfig,
    RiskFlag,
    RiskFlagType,
    ScoringWeights,
    TrustLevel,
    VerificationMode,
    WalletData,
)


def wallet(**kwargs) -> WalletData:
    values = {"address": "0xabc"}
    values.update(kwargs)
    return WalletData(**values)


def established_wallet(**kwargs) -> WalletData:
    values = {
        "transaction_count": 150,
        "contract_interactions": 5,
        "known_protocol_interactions": frozenset({"uniswap"}),
        "wallet_age": 200,
        "token_count": 8,
        "nft_count": 4,
    }
    values.update(kwargs)
    return wallet(**values)


def test_established_wallet_scores_eighty():
    data = established_wallet()

    score = calculate_score(data)

    assert score == 80
    assert get_trust_level(score) is TrustLevel.HIGH
    assert determine_verification_mode(score) is VerificationMode.BYPASS


def test_mixer_flag_costs_thirty_points():
    mixer = RiskFlag(RiskFlagType.MIXER_INTERACTION, -30, "tornado")

    assert calculate_score(established_wallet(risk_flags=(mixer,))) == 50


def test_empty_wallet_keeps_age_floor():
    assert calculate_score(wallet()) == 5


def test_no_activity_flag_drives_score_to_zero():
    assert calculate_score(wallet(risk_flags=(no_activity_flag(),))) == 0


@pytest.mark.parametrize(
    ("transactions", "expected"),
    [(0, 0), (1, 5), (10, 5), (11, 15), (100, 15), (101, 30), (5000, 30)],
)
def test_activity_brackets(transactions, expected):
    base = calculate_score(wallet(wallet_age=0))

    assert calculate_score(wallet(transaction_count=transactions)) - base == expected


@pytest.mark.parametrize(
    ("age_days", "expected"),
    [(0, 5), (29, 5), (30, 10), (179, 10), (180, 20), (3650, 20)],
)
def test_age_brackets(age_days, expected):
    assert calculate_score(wallet(wallet_age=age_days)) == expected


@pytest.mark.parametrize(
    ("tokens", "nfts", "expected"),
    [(0, 0, 0), (1, 0, 2), (0, 2, 2), (2, 1, 6), (5, 5, 6), (6, 5, 10)],
)
def test_diversity_brackets(tokens, nfts, expected):
    assert calculate_score(wallet(token_count=tokens, nft_count=nfts)) - 5 == expected


def test_contract_credits_are_independent():
    internal_only = wallet(contract_interactions=3)
    protocol_only = wallet(known_protocol_interactions=frozenset({"aave"}))
    both = wallet(contract_interactions=3, known_protocol_interactions=frozenset({"aave", "curve"}))

    assert calculate_score(internal_only) == 15
    assert calculate_score(protocol_only) == 15
    assert calculate_score(both) == 25


def test_score_is_monotonic_in_activity():
    scores = [calculate_score(wallet(transaction_count=count)) for count in range(0, 300, 7)]

    assert scores == sorted(scores)


def test_score_clamped_to_upper_bound():
    weights = ScoringWeights(
        transaction_activity=60,
        contract_interactions=40,
        wallet_age=20,
        token_diversity=10,
    )

    assert calculate_score(established_wallet(), weights) == 100


def test_stacked_flags_clamp_at_zero():
    flags = (
        RiskFlag(RiskFlagType.MIXER_INTERACTION, -30),
        RiskFlag(RiskFlagType.LARGE_INFLOW, -10),
        RiskFlag(RiskFlagType.LARGE_OUTFLOW, -10),
    )

    assert calculate_score(wallet(transaction_count=20, risk_flags=flags)) == 0


def test_clamp_score():
    assert clamp_score(-12) == 0
    assert clamp_score(42) == 42
    assert clamp_score(180) == 100


@pytest.mark.parametrize(
    ("score", "level", "mode"),
    [
        (100, TrustLevel.HIGH, VerificationMode.BYPASS),
        (70, TrustLevel.HIGH, VerificationMode.BYPASS),
        (69, TrustLevel.MEDIUM, VerificationMode.SIMPLE),
        (40, TrustLevel.MEDIUM, VerificationMode.SIMPLE),
        (39, TrustLevel.LOW, VerificationMode.ADVANCED),
        (0, TrustLevel.LOW, VerificationMode.ADVANCED),
    ],
)
def test_classification_boundaries(score, level, mode):
    assert get_trust_level(score) is level
    assert determine_verification_mode(score) is mode


def test_verification_mode_follows_configured_thresholds():
    strict = ReputationConfig(bypass_threshold=90, easy_threshold=60)

    assert determine_verification_mode(80, strict) is VerificationMode.SIMPLE
    assert determine_verification_mode(59, strict) is VerificationMode.ADVANCED
    assert get_trust_level(80) is TrustLevel.HIGH


def test_risk_flag_severity_bounds():
    with pytest.raises(ValueError):
        RiskFlag(RiskFlagType.MIXER_INTERACTION, -31)
    with pytest.raises(ValueError):
        RiskFlag(RiskFlagType.LARGE_INFLOW, 0)


def test_wallet_data_rejects_negative_counts():
    with pytest.raises(ValueError):
        wallet(transaction_count=-1)
