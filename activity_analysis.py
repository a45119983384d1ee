"""Pure functions that turn raw ledger records into reputation signals."""

from __future__ import annotations

import datetime as _dt
from typing import Iterable, List, Mapping, Sequence

from trustgate_models import LedgerTransaction, RiskFlag, RiskFlagType

MS_PER_DAY = 24 * 60 * 60 * 1000

DEFAULT_LARGE_VALUE_THRESHOLD = 10.0
DEFAULT_SUSPICIOUS_WINDOW_MS = MS_PER_DAY

MIXER_SEVERITY = -30
LARGE_TRANSFER_SEVERITY = -10
NO_ACTIVITY_SEVERITY = -20

DEFAULT_KNOWN_PROTOCOLS: Mapping[str, str] = {
    "0x7a250d5630b4cf539739df2c5dacb4c659f2488d": "uniswap_v2_router",
    "0xe592427a0aece92de3edee1f18e0157c05861564": "uniswap_v3_router",
    "0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45": "uniswap_v3_router2",
    "0x7d2768de32b0b80b7a3454c06bdac94a69ddc7a9": "aave_lending_pool",
    "0x87870bced4dd9d65f45c0b0847c88634c9c0f9f1": "aave_v3_pool",
    "0x3d9819210a31b4961b30ef54be2aed79b9c9cd3b": "compound_comptroller",
    "0xc00e94cb662c3520282e6f5717214004a7f26888": "compound_governance",
    "0x9f8f72aa9304c8b593d555f12ef6589cc3a579a2": "maker_mkr",
    "0x6b175474e89094c44da98b954eedeac495271d0f": "maker_dai",
    "0xd51a44d3fae010294c616388b506acda1bfaae46": "curve_tricrypto",
    "0xbebc44782c7db0a1a60cb6fe97d0b483032ff1c7": "curve_3pool",
    "0x57f1887a8bf19b14fc0df6fd9b2acc9af147ea85": "ens_registrar",
    "0x314159265dd8dbb310642f98f50c066173c1259b": "ens_registry",
    "0x12d66f87a04a9e220743712ce6d9bb1b5616b8fc": "tornado_cash_0.1_eth",
    "0x47ce0c6ed5b0ce3d3a51fdb1c52dc66a7c3c2936": "tornado_cash_1_eth",
    "0x910cbd523d972eb0a6f4cae4618ad62622b39dbf": "tornado_cash_10_eth",
    "0xa160cdab225685da1d56aa342ad8841c3b53f291": "tornado_cash_100_eth",
}

DEFAULT_MIXER_ADDRESSES: Mapping[str, str] = {
    address: label
    for address, label in DEFAULT_KNOWN_PROTOCOLS.items()
    if label.startswith("tornado_cash")
}


def current_millis() -> int:
    return int(_dt.datetime.now(_dt.timezone.utc).timestamp() * 1000)


def analyze_risk_flags(
    transactions: Sequence[LedgerTransaction],
    *,
    address: str | None = None,
    mixer_addresses: Mapping[str, str] = DEFAULT_MIXER_ADDRESSES,
    large_value_threshold: float = DEFAULT_LARGE_VALUE_THRESHOLD,
    window_ms: int = DEFAULT_SUSPICIOUS_WINDOW_MS,
    now: int | None = None,
) -> List[RiskFlag]:
    """Return risk flags for properties of the supplied transactions.

    A mixer flag is raised when any counterparty is on the denylist.  Large
    transfers inside the recent window raise at most one inflow and one
    outflow flag; direction is judged against ``address`` and defaults to
    outflow when the subject is unknown.  Absence of activity is not flagged
    here.
    """

    flags: List[RiskFlag] = []
    now_ms = current_millis() if now is None else now
    denylist = _normalize_table(mixer_addresses)

    mixer_hits = [
        tx for tx in transactions if any(party in denylist for party in tx.counterparties())
    ]
    if mixer_hits:
        names = sorted(
            {denylist[party] for tx in mixer_hits for party in tx.counterparties() if party in denylist}
        )
        flags.append(
            RiskFlag(
                type=RiskFlagType.MIXER_INTERACTION,
                severity=MIXER_SEVERITY,
                description=f"Detected {len(mixer_hits)} mixer interaction(s): {', '.join(names)}",
            )
        )

    subject = address.lower() if address else None
    inflows = 0
    outflows = 0
    for tx in transactions:
        if now_ms - tx.timestamp >= window_ms:
            continue
        if tx.value <= large_value_threshold:
            continue
        if subject is not None and tx.to_address.lower() == subject:
            inflows += 1
        else:
            outflows += 1

    hours = window_ms // (60 * 60 * 1000)
    if inflows:
        flags.append(
            RiskFlag(
                type=RiskFlagType.LARGE_INFLOW,
                severity=LARGE_TRANSFER_SEVERITY,
                description=f"Detected {inflows} large incoming transfer(s) in the last {hours}h",
            )
        )
    if outflows:
        flags.append(
            RiskFlag(
                type=RiskFlagType.LARGE_OUTFLOW,
                severity=LARGE_TRANSFER_SEVERITY,
                description=f"Detected {outflows} large outgoing transfer(s) in the last {hours}h",
            )
        )
    return flags


def no_activity_flag() -> RiskFlag:
    return RiskFlag(
        type=RiskFlagType.NO_ACTIVITY,
        severity=NO_ACTIVITY_SEVERITY,
        description="Wallet has no transaction history",
    )


def detect_protocol_interactions(
    transactions: Sequence[LedgerTransaction],
    *,
    known_protocols: Mapping[str, str] = DEFAULT_KNOWN_PROTOCOLS,
    mixer_addresses: Mapping[str, str] = DEFAULT_MIXER_ADDRESSES,
) -> frozenset[str]:
    """Return base protocol tags (``uniswap``, ``aave`` ...) seen as counterparties.

    Denylisted contracts never count as a positive signal, even when they also
    appear in ``known_protocols``.
    """

    protocols = _normalize_table(known_protocols)
    denylist = _normalize_table(mixer_addresses)
    tags: set[str] = set()
    for tx in transactions:
        for party in tx.counterparties():
            if not party or party in denylist:
                continue
            label = protocols.get(party)
            if label:
                tags.add(label.split("_")[0])
    return frozenset(tags)


def calculate_wallet_age(
    transactions: Sequence[LedgerTransaction],
    *,
    now: int | None = None,
) -> int:
    """Return whole days since the earliest transaction, 0 for no history."""

    if not transactions:
        return 0
    now_ms = current_millis() if now is None else now
    ordered = sorted(transactions, key=lambda tx: tx.timestamp)
    age_ms = now_ms - ordered[0].timestamp
    # Floored whole days: a history younger than one day reports 0 even though
    # transaction_count is non-zero. The age score floor still applies there.
    return max(0, age_ms // MS_PER_DAY)


def count_assets(
    token_transfers: Iterable[LedgerTransaction],
    nft_transfers: Iterable[LedgerTransaction],
) -> tuple[int, int]:
    """Return ``(token_count, nft_count)`` as distinct contract addresses per list."""

    tokens = {tx.contract_address.lower() for tx in token_transfers if tx.contract_address}
    nfts = {tx.contract_address.lower() for tx in nft_transfers if tx.contract_address}
    return len(tokens), len(nfts)


def latest_timestamp(transactions: Sequence[LedgerTransaction]) -> int:
    return max((tx.timestamp for tx in transactions), default=0)


def _normalize_table(table: Mapping[str, str]) -> dict[str, str]:
    return {address.lower(): label for address, label in table.items()}


__all__ = [
    "DEFAULT_KNOWN_PROTOCOLS",
    "DEFAULT_LARGE_VALUE_THRESHOLD",
    "DEFAULT_MIXER_ADDRESSES",
    "DEFAULT_SUSPICIOUS_WINDOW_MS",
    "LARGE_TRANSFER_SEVERITY",
    "MIXER_SEVERITY",
    "MS_PER_DAY",
    "NO_ACTIVITY_SEVERITY",
    "analyze_risk_flags",
    "calculate_wallet_age",
    "count_assets",
    "current_millis",
    "detect_protocol_interactions",
    "latest_timestamp",
    "no_activity_flag",
]
