"""Reputation orchestration for the TrustGate engine.

The service composes the ledger client, activity analyzer, scoring engine,
fallback scorer and cache into the two operations callers use:
:meth:`ReputationService.get_reputation` and
:meth:`ReputationService.batch_get_reputation`.  Only invalid input is ever
raised to the caller; every other failure degrades to a deterministic result
tagged ``DataSource.FALLBACK``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Callable, Dict, Iterable, List, Mapping, Sequence

import httpx

from activity_analysis import (
    analyze_risk_flags,
    calculate_wallet_age,
    count_assets,
    current_millis,
    detect_protocol_interactions,
    latest_timestamp,
    no_activity_flag,
)
from fallback_scorer import fallback_wallet_data, generate_fallback_score
from ledger_clients import SleepFunc, create_ledger_client
from monitoring import ApiHealthMonitor
from reputation_cache import ReputationCache, cache_key
from scoring import calculate_score, determine_verification_mode, get_trust_level
from settings import ReputationSettings
from trustgate_models import (
    DataSource,
    DataUnavailable,
    InvalidInput,
    LedgerDataClient,
    LedgerTransaction,
    ReputationResult,
    WalletData,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReputationOptions:
    """Per-call options.

    ``force_live`` selects the data mode: ``True`` always attempts the live
    path, ``False`` always uses the fallback scorer and ``None`` follows
    :attr:`settings.ReputationSettings.live_by_default`.  ``ttl_override``
    replaces the configured cache lifetime (seconds) for the stored result.
    """

    force_live: bool | None = None
    ttl_override: float | None = None

    def __post_init__(self) -> None:
        if self.ttl_override is not None and not self.ttl_override > 0:
            raise InvalidInput(f"ttl_override must be positive, got {self.ttl_override!r}")


@dataclass(slots=True)
class WalletActivity:
    """Raw activity lists for one address."""

    transactions: Sequence[LedgerTransaction] = field(default_factory=list)
    internal_transactions: Sequence[LedgerTransaction] = field(default_factory=list)
    token_transfers: Sequence[LedgerTransaction] = field(default_factory=list)
    nft_transfers: Sequence[LedgerTransaction] = field(default_factory=list)


class ReputationService:
    """Computes, caches and serves wallet reputation results."""

    def __init__(
        self,
        ledger_client: LedgerDataClient | None = None,
        *,
        settings: ReputationSettings | None = None,
        cache: ReputationCache | None = None,
        monitor: ApiHealthMonitor | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._ledger = ledger_client
        self._settings = settings if settings is not None else ReputationSettings()
        self._clock = clock if clock is not None else current_millis
        self._cache = cache if cache is not None else ReputationCache(
            max_entries=self._settings.cache.max_entries,
            default_ttl=self._settings.cache.ttl,
            clock=self._clock,
        )
        self._monitor = monitor

    @property
    def settings(self) -> ReputationSettings:
        return self._settings

    @property
    def cache(self) -> ReputationCache:
        return self._cache

    async def get_reputation(
        self,
        address: str,
        options: ReputationOptions | None = None,
    ) -> ReputationResult:
        """Return the reputation of ``address``, serving fresh cache hits as stored.

        Raises :class:`InvalidInput` for an empty address.  A cancelled call
        leaves the cache untouched.
        """

        _validate_address(address)
        opts = options or ReputationOptions()
        live = self._wants_live(opts)
        key = cache_key(address, live)

        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result: ReputationResult | None = None
        if live:
            try:
                result = await self._live_result(address)
            except Exception as exc:
                logger.warning("Live scoring failed for %s, using fallback: %s", address, exc)
        if result is None:
            result = self._fallback_result(address)

        self._cache.put(key, result, opts.ttl_override)
        return result

    async def batch_get_reputation(
        self,
        addresses: Iterable[str],
        options: ReputationOptions | None = None,
    ) -> Dict[str, ReputationResult]:
        """Score every distinct address, ``batch_size`` at a time.

        Each group is awaited in full before the next one starts.  A member that
        fails for any reason gets an uncached fallback result.
        """

        unique = list(dict.fromkeys(addresses))
        size = self._settings.batch_size
        results: Dict[str, ReputationResult] = {}
        for start in range(0, len(unique), size):
            group = unique[start : start + size]
            outcomes = await asyncio.gather(
                *(self.get_reputation(address, options) for address in group),
                return_exceptions=True,
            )
            for address, outcome in zip(group, outcomes):
                if isinstance(outcome, ReputationResult):
                    results[address] = outcome
                elif isinstance(outcome, Exception):
                    logger.warning("Batch member %r failed, using fallback: %s", address, outcome)
                    results[address] = self._fallback_result(str(address))
                else:
                    raise outcome
        return results

    def get_cached_reputation(self, address: str, *, live: bool | None = None) -> ReputationResult | None:
        """Return a fresh cached result without triggering any fetch."""

        mode = self._settings.live_by_default if live is None else live
        return self._cache.get(cache_key(address, mode))

    def clear_cache(self) -> None:
        self._cache.clear()

    async def fetch_activity(self, address: str) -> WalletActivity:
        """Fetch the four activity lists concurrently.

        Failure of the transaction list propagates.  Failures of the enrichment
        lists are logged and replaced by empty lists.
        """

        if self._ledger is None:
            raise DataUnavailable("No ledger client configured", action="fetch_activity")
        client = self._ledger
        transactions, internal, tokens, nfts = await asyncio.gather(
            client.get_transactions(address),
            client.get_internal_transactions(address),
            client.get_token_transfers(address),
            client.get_nft_transfers(address),
            return_exceptions=True,
        )
        if isinstance(transactions, BaseException):
            if isinstance(transactions, Exception) and self._monitor is not None:
                self._monitor.record_api_error(
                    client.service_id,
                    str(transactions),
                    address=address,
                    details={"stage": "transactions"},
                )
            raise transactions
        if self._monitor is not None:
            self._monitor.record_api_success(
                client.service_id,
                f"{client.service_name}: activity received",
                address=address,
                details={"transactions": len(transactions)},
            )
        return WalletActivity(
            transactions=list(transactions),
            internal_transactions=self._enrichment(internal, "internal transactions", address),
            token_transfers=self._enrichment(tokens, "token transfers", address),
            nft_transfers=self._enrichment(nfts, "NFT transfers", address),
        )

    async def fetch_wallet_data(self, address: str) -> WalletData:
        """Fetch live activity for ``address`` and derive its :class:`WalletData`."""

        activity = await self.fetch_activity(address)
        return self.build_wallet_data(address, activity)

    def build_wallet_data(self, address: str, activity: WalletActivity) -> WalletData:
        analysis = self._settings.analysis
        now = self._clock()
        combined = list(activity.transactions) + list(activity.internal_transactions)
        risk_flags = analyze_risk_flags(
            combined,
            address=address,
            mixer_addresses=analysis.mixer_addresses,
            large_value_threshold=analysis.large_value_threshold,
            window_ms=analysis.suspicious_window_ms,
            now=now,
        )
        if not activity.transactions:
            risk_flags.append(no_activity_flag())
        token_count, nft_count = count_assets(activity.token_transfers, activity.nft_transfers)
        wallet = WalletData(
            address=address,
            transaction_count=len(activity.transactions),
            contract_interactions=len(activity.internal_transactions),
            known_protocol_interactions=detect_protocol_interactions(
                combined,
                known_protocols=analysis.known_protocols,
                mixer_addresses=analysis.mixer_addresses,
            ),
            wallet_age=calculate_wallet_age(activity.transactions, now=now),
            token_count=token_count,
            nft_count=nft_count,
            risk_flags=tuple(risk_flags),
            last_activity=latest_timestamp(activity.transactions),
        )
        logger.info(
            "Fetched live wallet data for %s: transactions=%d contracts=%d protocols=%s "
            "age=%dd assets=%d risks=%d",
            address,
            wallet.transaction_count,
            wallet.contract_interactions,
            sorted(wallet.known_protocol_interactions),
            wallet.wallet_age,
            wallet.total_assets,
            len(wallet.risk_flags),
        )
        return wallet

    async def _live_result(self, address: str) -> ReputationResult:
        wallet = await self.fetch_wallet_data(address)
        score = calculate_score(wallet, self._settings.reputation.weights)
        return self._build_result(score, wallet, DataSource.LIVE)

    def _fallback_result(self, address: str) -> ReputationResult:
        score = generate_fallback_score(address)
        logger.info("Using fallback score %d for %s", score, address)
        return self._build_result(score, fallback_wallet_data(address), DataSource.FALLBACK)

    def _build_result(self, score: int, wallet: WalletData, source: DataSource) -> ReputationResult:
        return ReputationResult(
            score=score,
            trust_level=get_trust_level(score),
            verification_mode=determine_verification_mode(score, self._settings.reputation),
            wallet_data=wallet,
            data_source=source,
            computed_at=self._clock(),
        )

    def _wants_live(self, options: ReputationOptions) -> bool:
        if options.force_live is not None:
            return options.force_live
        return self._settings.live_by_default

    def _enrichment(
        self,
        outcome: Sequence[LedgerTransaction] | BaseException,
        label: str,
        address: str,
    ) -> List[LedgerTransaction]:
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning("Fetching %s for %s failed, treating as empty: %s", label, address, outcome)
            if self._monitor is not None and self._ledger is not None:
                self._monitor.record_api_error(
                    self._ledger.service_id,
                    str(outcome),
                    address=address,
                    details={"stage": label},
                )
            return []
        return list(outcome)


class InMemoryLedgerClient:
    """Ledger client that serves activity from a pre-seeded dataset.

    Addresses listed in ``unavailable`` raise :class:`DataUnavailable` for the
    transaction list, which is useful for exercising the fallback path without
    calling external APIs.
    """

    def __init__(
        self,
        activity: Mapping[str, WalletActivity],
        *,
        unavailable: Iterable[str] = (),
        service_id: str = "in_memory",
        service_name: str = "In-memory ledger",
    ) -> None:
        self._activity = dict(activity)
        self._unavailable = set(unavailable)
        self.service_id = service_id
        self.service_name = service_name
        self.requests: List[tuple[str, str]] = []

    async def get_transactions(self, address: str) -> Sequence[LedgerTransaction]:
        self.requests.append(("transactions", address))
        await asyncio.sleep(0)
        if address in self._unavailable:
            raise DataUnavailable(f"transactions for {address} unavailable", action="transactions")
        return list(self._lookup(address).transactions)

    async def get_internal_transactions(self, address: str) -> Sequence[LedgerTransaction]:
        self.requests.append(("internal", address))
        await asyncio.sleep(0)
        return list(self._lookup(address).internal_transactions)

    async def get_token_transfers(self, address: str) -> Sequence[LedgerTransaction]:
        self.requests.append(("tokens", address))
        await asyncio.sleep(0)
        return list(self._lookup(address).token_transfers)

    async def get_nft_transfers(self, address: str) -> Sequence[LedgerTransaction]:
        self.requests.append(("nfts", address))
        await asyncio.sleep(0)
        return list(self._lookup(address).nft_transfers)

    def _lookup(self, address: str) -> WalletActivity:
        return self._activity.get(address) or WalletActivity()


def build_service(
    settings: ReputationSettings | None = None,
    *,
    session: httpx.AsyncClient | None = None,
    monitor: ApiHealthMonitor | None = None,
    sleep: SleepFunc | None = None,
) -> ReputationService:
    """Wire a :class:`ReputationService` backed by the configured ledger API."""

    resolved = settings or ReputationSettings.from_env()
    client = create_ledger_client(resolved.ledger, session=session, sleep=sleep)
    return ReputationService(client, settings=resolved, monitor=monitor)


async def evaluate_address(
    address: str,
    settings: ReputationSettings | None = None,
    *,
    options: ReputationOptions | None = None,
    session: httpx.AsyncClient | None = None,
) -> ReputationResult:
    """Convenience helper that scores a single address with a throwaway service."""

    service = build_service(settings, session=session)
    return await service.get_reputation(address, options)


def _validate_address(address: object) -> None:
    if not isinstance(address, str) or not address.strip():
        raise InvalidInput("address must be a non-empty string")


__all__ = [
    "InMemoryLedgerClient",
    "ReputationOptions",
    "ReputationService",
    "WalletActivity",
    "build_service",
    "evaluate_address",
]
