"""Core data model for the TrustGate wallet reputation engine.

The types below are shared by the ledger clients, the activity analyzer, the
scoring engine, the cache and the reputation service.  Keeping them in a module
with no project imports lets every other layer depend on it without cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, List, Mapping, Protocol, Sequence


class TrustLevel(str, Enum):
    """Coarse trust tier derived from a numeric score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VerificationMode(str, Enum):
    """Strictness of the verification a caller should apply."""

    BYPASS = "bypass"
    SIMPLE = "simple"
    ADVANCED = "advanced"


class DataSource(str, Enum):
    """Provenance of a reputation result."""

    LIVE = "live"
    FALLBACK = "fallback"


class RiskFlagType(str, Enum):
    """Negative signals recognised by the engine."""

    MIXER_INTERACTION = "mixer_interaction"
    LARGE_INFLOW = "large_inflow"
    LARGE_OUTFLOW = "large_outflow"
    NO_ACTIVITY = "no_activity"


class ReputationError(Exception):
    """Base class for all errors raised by the reputation engine."""


class InvalidInput(ReputationError, ValueError):
    """Raised when a caller supplies a malformed or empty address."""


class ConfigurationError(ReputationError, ValueError):
    """Raised when settings fail validation at construction time."""


class CacheCorruption(ReputationError):
    """Signals an unreadable cache entry.  Never escapes the cache."""


class DataUnavailable(ReputationError):
    """Raised when the indexing service could not deliver data after retries."""

    def __init__(self, message: str, *, action: str = "", attempts: int = 0) -> None:
        super().__init__(message)
        self.action = action
        self.attempts = attempts


@dataclass(frozen=True, slots=True)
class LedgerTransaction:
    """A single record returned by the indexing service.

    ``value`` is expressed in the network's native unit (ETH for mainnet),
    ``timestamp`` in epoch milliseconds.  ``contract_address`` is only
    populated for token and NFT transfers.
    """

    tx_hash: str
    from_address: str
    to_address: str
    value: float
    timestamp: int
    contract_address: str = ""
    is_error: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def counterparties(self) -> tuple[str, str]:
        """Return both endpoints lower-cased for table lookups."""

        return self.from_address.lower(), self.to_address.lower()


@dataclass(frozen=True, slots=True)
class RiskFlag:
    """A negative signal; ``severity`` is always in ``[-30, -10]``."""

    type: RiskFlagType
    severity: int
    description: str = ""

    def __post_init__(self) -> None:
        if not -30 <= self.severity <= -10:
            raise ValueError(f"Risk flag severity {self.severity} outside [-30, -10]")


@dataclass(frozen=True, slots=True)
class WalletData:
    """Derived snapshot of an address's on-chain activity."""

    address: str
    transaction_count: int = 0
    contract_interactions: int = 0
    known_protocol_interactions: FrozenSet[str] = frozenset()
    wallet_age: int = 0
    token_count: int = 0
    nft_count: int = 0
    risk_flags: tuple[RiskFlag, ...] = ()
    last_activity: int = 0

    def __post_init__(self) -> None:
        for name in (
            "transaction_count",
            "contract_interactions",
            "wallet_age",
            "token_count",
            "nft_count",
            "last_activity",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"WalletData.{name} must be non-negative")

    @property
    def total_assets(self) -> int:
        return self.token_count + self.nft_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "transaction_count": self.transaction_count,
            "contract_interactions": self.contract_interactions,
            "known_protocol_interactions": sorted(self.known_protocol_interactions),
            "wallet_age": self.wallet_age,
            "token_count": self.token_count,
            "nft_count": self.nft_count,
            "risk_flags": [
                {"type": flag.type.value, "severity": flag.severity, "description": flag.description}
                for flag in self.risk_flags
            ],
            "last_activity": self.last_activity,
        }


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    """Point budgets for each scoring component."""

    transaction_activity: int = 30
    contract_interactions: int = 20
    wallet_age: int = 20
    token_diversity: int = 10
    risk_flags: int = -30

    def validate(self) -> List[str]:
        """Return a list of validation problems, empty when the weights are sane."""

        problems: List[str] = []
        for name in ("transaction_activity", "contract_interactions", "wallet_age", "token_diversity"):
            if getattr(self, name) < 0:
                problems.append(f"weight {name} must be non-negative")
        if self.risk_flags > 0:
            problems.append("weight risk_flags must be zero or negative")
        return problems


@dataclass(frozen=True, slots=True)
class ReputationConfig:
    """Thresholds that map a score to a verification mode."""

    bypass_threshold: int = 70
    easy_threshold: int = 40
    weights: ScoringWeights = field(default_factory=ScoringWeights)

    @property
    def simple_threshold(self) -> int:
        return self.easy_threshold

    def validate(self) -> List[str]:
        problems = list(self.weights.validate())
        if self.easy_threshold < 0:
            problems.append("easy_threshold must be >= 0")
        if self.bypass_threshold <= self.easy_threshold:
            problems.append("bypass_threshold must be greater than easy_threshold")
        if self.bypass_threshold > 100:
            problems.append("bypass_threshold must be <= 100")
        return problems


@dataclass(frozen=True, slots=True)
class ReputationResult:
    """Externally visible output of the reputation engine."""

    score: int
    trust_level: TrustLevel
    verification_mode: VerificationMode
    wallet_data: WalletData
    data_source: DataSource
    computed_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "trust_level": self.trust_level.value,
            "verification_mode": self.verification_mode.value,
            "wallet_data": self.wallet_data.to_dict(),
            "data_source": self.data_source.value,
            "computed_at": self.computed_at,
        }


class LedgerDataClient(Protocol):
    """Protocol for indexing-service integrations."""

    service_id: str
    service_name: str

    async def get_transactions(self, address: str) -> Sequence[LedgerTransaction]:
        """Return normal transactions, most recent first."""

    async def get_internal_transactions(self, address: str) -> Sequence[LedgerTransaction]:
        """Return internal (contract-triggered) transactions."""

    async def get_token_transfers(self, address: str) -> Sequence[LedgerTransaction]:
        """Return fungible token transfers."""

    async def get_nft_transfers(self, address: str) -> Sequence[LedgerTransaction]:
        """Return non-fungible token transfers."""


__all__ = [
    "CacheCorruption",
    "ConfigurationError",
    "DataSource",
    "DataUnavailable",
    "InvalidInput",
    "LedgerDataClient",
    "LedgerTransaction",
    "ReputationConfig",
    "ReputationError",
    "ReputationResult",
    "RiskFlag",
    "RiskFlagType",
    "ScoringWeights",
    "TrustLevel",
    "VerificationMode",
    "WalletData",
]
