"""Typed configuration assembled once from defaults, environment and overrides.

``ReputationSettings.from_env()`` is the single entry point used by the CLI and
by applications wiring a :class:`trustgate_service.ReputationService`.  Every
value is validated eagerly; invalid combinations raise
:class:`trustgate_models.ConfigurationError` before any request is made.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Any, List, Mapping

from activity_analysis import (
    DEFAULT_KNOWN_PROTOCOLS,
    DEFAULT_LARGE_VALUE_THRESHOLD,
    DEFAULT_MIXER_ADDRESSES,
    DEFAULT_SUSPICIOUS_WINDOW_MS,
)
from api_keys import get_api_key
from trustgate_models import ConfigurationError, ReputationConfig, ScoringWeights

# network name -> (default endpoint, chain id)
NETWORK_ENDPOINTS: Mapping[str, tuple[str, int]] = {
    "mainnet": ("https://api.etherscan.io/v2/api", 1),
    "sepolia": ("https://api.etherscan.io/v2/api", 11155111),
    "holesky": ("https://api.etherscan.io/v2/api", 17000),
    "polygon": ("https://api.etherscan.io/v2/api", 137),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class LedgerSettings:
    """Connection and retry parameters for the indexing service."""

    api_key: str | None = None
    network: str = "mainnet"
    base_url: str | None = None
    timeout: float = 10.0
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 8.0
    page_size: int = 1000
    max_pages: int = 1

    @property
    def endpoint(self) -> str:
        if self.base_url:
            return self.base_url
        return NETWORK_ENDPOINTS[self.network][0]

    @property
    def chain_id(self) -> int:
        return NETWORK_ENDPOINTS[self.network][1]

    def validate(self) -> List[str]:
        problems: List[str] = []
        if self.network not in NETWORK_ENDPOINTS:
            problems.append(
                f"unknown network {self.network!r}; expected one of {', '.join(sorted(NETWORK_ENDPOINTS))}"
            )
        if self.timeout <= 0:
            problems.append("timeout must be positive")
        if self.max_attempts < 1:
            problems.append("max_attempts must be at least 1")
        if self.backoff_base < 0:
            problems.append("backoff_base must be >= 0")
        if self.backoff_max < self.backoff_base:
            problems.append("backoff_max must be >= backoff_base")
        if self.page_size < 1:
            problems.append("page_size must be at least 1")
        if self.max_pages < 1:
            problems.append("max_pages must be at least 1")
        return problems


@dataclass(frozen=True, slots=True)
class CacheSettings:
    ttl: float = 300.0
    max_entries: int = 1000

    def validate(self) -> List[str]:
        problems: List[str] = []
        if self.ttl <= 0:
            problems.append("cache ttl must be positive")
        if self.max_entries < 1:
            problems.append("cache max_entries must be at least 1")
        return problems


@dataclass(frozen=True, slots=True)
class AnalysisSettings:
    """Address tables and thresholds consumed by the activity analyzer."""

    known_protocols: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_KNOWN_PROTOCOLS))
    mixer_addresses: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_MIXER_ADDRESSES))
    large_value_threshold: float = DEFAULT_LARGE_VALUE_THRESHOLD
    suspicious_window_ms: int = DEFAULT_SUSPICIOUS_WINDOW_MS

    def validate(self) -> List[str]:
        problems: List[str] = []
        if self.large_value_threshold < 0:
            problems.append("large_value_threshold must be >= 0")
        if self.suspicious_window_ms <= 0:
            problems.append("suspicious_window_ms must be positive")
        return problems


@dataclass(frozen=True, slots=True)
class ReputationSettings:
    """Complete engine configuration."""

    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    reputation: ReputationConfig = field(default_factory=ReputationConfig)
    cache: CacheSettings = field(default_factory=CacheSettings)
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)
    batch_size: int = 5
    live_data: bool | None = None

    def __post_init__(self) -> None:
        problems = (
            self.ledger.validate()
            + self.reputation.validate()
            + self.cache.validate()
            + self.analysis.validate()
        )
        if self.batch_size < 1:
            problems.append("batch_size must be at least 1")
        if problems:
            raise ConfigurationError("Invalid TrustGate configuration: " + "; ".join(problems))

    @property
    def live_by_default(self) -> bool:
        """Whether callers get live evaluation unless they ask otherwise."""

        if self.live_data is not None:
            return self.live_data
        return bool(self.ledger.api_key)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "ReputationSettings":
        """Build settings from defaults, then ``environ``, then ``overrides``.

        ``environ`` defaults to ``os.environ``.  Keyword overrides replace whole
        sections (``ledger=LedgerSettings(...)``) or top-level scalars.
        """

        env = os.environ if environ is None else environ
        ledger = LedgerSettings(
            api_key=env.get("ETHERSCAN_API_KEY") or (get_api_key("etherscan") if environ is None else None),
            network=(env.get("ETHERSCAN_NETWORK") or "mainnet").strip().lower(),
            base_url=env.get("ETHERSCAN_BASE_URL") or None,
            timeout=_env_number(env, "TRUSTGATE_TIMEOUT", 10.0, float),
            max_attempts=_env_number(env, "TRUSTGATE_MAX_ATTEMPTS", 3, int),
        )
        defaults = ReputationConfig()
        reputation = ReputationConfig(
            bypass_threshold=_env_number(env, "TRUSTGATE_BYPASS_THRESHOLD", defaults.bypass_threshold, int),
            easy_threshold=_env_number(env, "TRUSTGATE_EASY_THRESHOLD", defaults.easy_threshold, int),
            weights=ScoringWeights(),
        )
        cache = CacheSettings(
            ttl=_env_number(env, "TRUSTGATE_CACHE_TTL", 300.0, float),
            max_entries=_env_number(env, "TRUSTGATE_CACHE_MAX_ENTRIES", 1000, int),
        )
        live_data: bool | None = None
        if (env.get("TRUSTGATE_USE_MOCK_DATA") or "").strip().lower() in _TRUE_VALUES:
            live_data = False
        values: dict[str, Any] = {
            "ledger": ledger,
            "reputation": reputation,
            "cache": cache,
            "analysis": AnalysisSettings(),
            "batch_size": _env_number(env, "TRUSTGATE_BATCH_SIZE", 5, int),
            "live_data": live_data,
        }
        values.update(overrides)
        return cls(**values)


def _env_number(env: Mapping[str, str], name: str, default: Any, kind: type) -> Any:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return kind(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a valid {kind.__name__}, got {raw!r}") from exc


__all__ = [
    "AnalysisSettings",
    "CacheSettings",
    "LedgerSettings",
    "NETWORK_ENDPOINTS",
    "ReputationSettings",
]
