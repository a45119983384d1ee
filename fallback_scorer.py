"""Deterministic low-confidence scoring for addresses without live data."""

from __future__ import annotations

from trustgate_models import WalletData

FALLBACK_MIN = 20
FALLBACK_MAX = 60

_UINT32 = 0xFFFFFFFF


def address_hash(address: str) -> int:
    """Return a signed 32-bit rolling hash (``h * 31 + unit``) of ``address``.

    The hash runs over UTF-16 code units, so characters outside the BMP
    contribute their two surrogates rather than a single code point.
    """

    data = address.encode("utf-16-le", "surrogatepass")
    value = 0
    for offset in range(0, len(data), 2):
        unit = int.from_bytes(data[offset : offset + 2], "little")
        value = (value * 31 + unit) & _UINT32
    if value & 0x80000000:
        value -= 1 << 32
    return value


def generate_fallback_score(address: str) -> int:
    """Return a score in ``[20, 60]`` derived only from ``address``."""

    span = FALLBACK_MAX - FALLBACK_MIN + 1
    return abs(address_hash(address)) % span + FALLBACK_MIN


def fallback_wallet_data(address: str) -> WalletData:
    """Return an empty activity snapshot used alongside a fallback score."""

    return WalletData(address=address)


__all__ = [
    "FALLBACK_MAX",
    "FALLBACK_MIN",
    "address_hash",
    "fallback_wallet_data",
    "generate_fallback_score",
]
