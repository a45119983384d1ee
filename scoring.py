"""Weighted scoring formula and score classification."""

from __future__ import annotations

from trustgate_models import (
    ReputationConfig,
    ScoringWeights,
    TrustLevel,
    VerificationMode,
    WalletData,
)

DEFAULT_WEIGHTS = ScoringWeights()
DEFAULT_CONFIG = ReputationConfig()

HIGH_TRUST_THRESHOLD = 70
MEDIUM_TRUST_THRESHOLD = 40

SCORE_MIN = 0
SCORE_MAX = 100

# Fractions of each component budget awarded per bracket.
_ACTIVITY_HALF = 1 / 2
_ACTIVITY_FLOOR = 1 / 6
_CONTRACT_CREDIT = 1 / 2
_AGE_HALF = 1 / 2
_AGE_FLOOR = 1 / 4
_DIVERSITY_MAJORITY = 3 / 5
_DIVERSITY_FLOOR = 1 / 5

_DAYS_PER_MONTH = 30


def calculate_score(data: WalletData, weights: ScoringWeights = DEFAULT_WEIGHTS) -> int:
    """Return the reputation score of ``data`` clamped to ``[0, 100]``.

    With the default weights the components are worth:

    * transaction activity: 30 for more than 100 transactions, 15 for 11-100,
      5 for 1-10, nothing for an empty history;
    * contract interactions: 10 for any internal transaction plus 10 for any
      recognised protocol;
    * wallet age: 20 from six months, 10 from one month, 5 otherwise.  The
      floor also applies to a zero-day wallet;
    * asset diversity: 10 above ten assets, 6 from three, 2 from one.

    Risk flag severities are added unscaled.
    """

    score = 0
    score += _activity_points(data.transaction_count, weights.transaction_activity)
    score += _contract_points(data, weights.contract_interactions)
    score += _age_points(data.wallet_age, weights.wallet_age)
    score += _diversity_points(data.total_assets, weights.token_diversity)
    score += sum(flag.severity for flag in data.risk_flags)
    return clamp_score(score)


def clamp_score(score: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, int(score)))


def get_trust_level(
    score: int,
    *,
    high_threshold: int = HIGH_TRUST_THRESHOLD,
    medium_threshold: int = MEDIUM_TRUST_THRESHOLD,
) -> TrustLevel:
    if score >= high_threshold:
        return TrustLevel.HIGH
    if score >= medium_threshold:
        return TrustLevel.MEDIUM
    return TrustLevel.LOW


def determine_verification_mode(
    score: int, config: ReputationConfig = DEFAULT_CONFIG
) -> VerificationMode:
    if score >= config.bypass_threshold:
        return VerificationMode.BYPASS
    if score >= config.easy_threshold:
        return VerificationMode.SIMPLE
    return VerificationMode.ADVANCED


trust_level_from_score = get_trust_level
verification_mode_from_score = determine_verification_mode


def _portion(budget: int, fraction: float) -> int:
    return int(budget * fraction + 0.5)


def _activity_points(transaction_count: int, budget: int) -> int:
    if transaction_count >= 101:
        return budget
    if transaction_count >= 11:
        return _portion(budget, _ACTIVITY_HALF)
    if transaction_count > 0:
        return _portion(budget, _ACTIVITY_FLOOR)
    return 0


def _contract_points(data: WalletData, budget: int) -> int:
    credit = _portion(budget, _CONTRACT_CREDIT)
    points = 0
    if data.contract_interactions > 0:
        points += credit
    if data.known_protocol_interactions:
        points += credit
    return min(points, budget)


def _age_points(wallet_age_days: int, budget: int) -> int:
    months = wallet_age_days / _DAYS_PER_MONTH
    if months >= 6:
        return budget
    if months >= 1:
        return _portion(budget, _AGE_HALF)
    return _portion(budget, _AGE_FLOOR)


def _diversity_points(total_assets: int, budget: int) -> int:
    if total_assets > 10:
        return budget
    if total_assets >= 3:
        return _portion(budget, _DIVERSITY_MAJORITY)
    if total_assets >= 1:
        return _portion(budget, _DIVERSITY_FLOOR)
    return 0


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_WEIGHTS",
    "HIGH_TRUST_THRESHOLD",
    "MEDIUM_TRUST_THRESHOLD",
    "calculate_score",
    "clamp_score",
    "determine_verification_mode",
    "get_trust_level",
    "trust_level_from_score",
    "verification_mode_from_score",
]
