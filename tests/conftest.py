"""Shared fixtures for the TrustGate test-suite."""

from __future__ import annotations

import itertools

import pytest

from activity_analysis import MS_PER_DAY
from trustgate_models import (
    DataSource,
    LedgerTransaction,
    ReputationResult,
    TrustLevel,
    VerificationMode,
    WalletData,
)

NOW = 1_700_000_000_000
SUBJECT = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
UNISWAP_V2 = "0x7a250d5630b4cf539739df2c5dacb4c659f2488d"
TORNADO_1_ETH = "0x47ce0c6ed5b0ce3d3a51fdb1c52dc66a7c3c2936"


class ManualClock:
    """Epoch-millisecond clock advanced explicitly by tests."""

    def __init__(self, start: int = NOW) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, *, seconds: float = 0, days: float = 0) -> None:
        self.now += int(seconds * 1000 + days * MS_PER_DAY)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_tx():
    counter = itertools.count()

    def _make(
        *,
        from_address: str = SUBJECT,
        to_address: str = OTHER,
        value: float = 0.5,
        age_days: float = 1.0,
        contract_address: str = "",
        now: int = NOW,
    ) -> LedgerTransaction:
        return LedgerTransaction(
            tx_hash=f"0x{next(counter):064x}",
            from_address=from_address,
            to_address=to_address,
            value=value,
            timestamp=now - int(age_days * MS_PER_DAY),
            contract_address=contract_address,
        )

    return _make


@pytest.fixture
def make_result():
    def _make(
        address: str = SUBJECT,
        score: int = 50,
        source: DataSource = DataSource.LIVE,
        computed_at: int = NOW,
    ) -> ReputationResult:
        return ReputationResult(
            score=score,
            trust_level=TrustLevel.MEDIUM,
            verification_mode=VerificationMode.SIMPLE,
            wallet_data=WalletData(address=address),
            data_source=source,
            computed_at=computed_at,
        )

    return _make
