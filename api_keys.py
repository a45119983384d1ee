"""Credential registry for the indexing services TrustGate talks to.

A key is looked up in three places, first match wins:

1. the process environment (``ETHERSCAN_API_KEY``, ``POLYGONSCAN_API_KEY``);
2. a dotenv-style file: ``$TRUSTGATE_API_KEYS_FILE`` if set, otherwise
   ``trustgate.env`` or ``.env`` beside this module or in the working directory;
3. the registry default, normally ``None``.

Only :func:`get_masked_key` / :func:`mask_secret` output may reach logs.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path
from typing import Dict, Iterator, Mapping

KEYS_FILE_ENV = "TRUSTGATE_API_KEYS_FILE"
_ENV_FILE_NAMES = ("trustgate.env", ".env")


@dataclass(frozen=True)
class APIServiceKey:
    """How to find the API key of one external service."""

    service_id: str
    display_name: str
    env_var: str
    default_value: str | None = None

    def resolve(self) -> str | None:
        from_process = (os.getenv(self.env_var) or "").strip()
        if from_process:
            return from_process
        return _local_env().get(self.env_var) or self.default_value

    def masked(self) -> str:
        return mask_secret(self.resolve())


API_SERVICE_KEYS: Mapping[str, APIServiceKey] = {
    key.service_id: key
    for key in (
        APIServiceKey("etherscan", "Etherscan API", "ETHERSCAN_API_KEY"),
        APIServiceKey("polygonscan", "Polygonscan API", "POLYGONSCAN_API_KEY"),
    )
}


def get_api_key(service_id: str) -> str | None:
    entry = API_SERVICE_KEYS.get(service_id)
    return entry.resolve() if entry else None


def get_masked_key(service_id: str) -> str:
    entry = API_SERVICE_KEYS.get(service_id)
    return entry.masked() if entry else "-"


def get_display_name(service_id: str) -> str:
    entry = API_SERVICE_KEYS.get(service_id)
    return entry.display_name if entry else service_id


def mask_secret(value: str | None) -> str:
    """Keep the first and last two characters of ``value`` and star the rest."""

    if not value:
        return "-"
    if len(value) <= 4:
        return "*" * len(value)
    return value[:2] + "*" * (len(value) - 4) + value[-2:]


def reset_cache() -> None:
    """Forget parsed key files so the next lookup reads them again."""

    _local_env.cache_clear()


def parse_env_file(path: Path) -> Dict[str, str]:
    """Parse ``KEY=value`` lines, tolerating comments, ``export`` and quotes."""

    values: Dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        name, sep, value = line.partition("=")
        name = name.strip()
        if not sep or not name or name.startswith("#"):
            continue
        values.setdefault(name, value.strip().strip("'\""))
    return values


@lru_cache(maxsize=1)
def _local_env() -> Mapping[str, str]:
    merged: Dict[str, str] = {}
    for path in _env_files():
        try:
            parsed = parse_env_file(path)
        except OSError:
            continue
        for name, value in parsed.items():
            merged.setdefault(name, value)
    return merged


def _env_files() -> Iterator[Path]:
    override = os.getenv(KEYS_FILE_ENV)
    if override:
        yield Path(override).expanduser()
    seen: set[Path] = set()
    for directory in (Path(__file__).resolve().parent, Path.cwd()):
        for name in _ENV_FILE_NAMES:
            candidate = (directory / name).resolve()
            if candidate in seen or not candidate.is_file():
                continue
            seen.add(candidate)
            yield candidate


__all__ = [
    "API_SERVICE_KEYS",
    "APIServiceKey",
    "KEYS_FILE_ENV",
    "get_api_key",
    "get_display_name",
    "get_masked_key",
    "mask_secret",
    "parse_env_file",
    "reset_cache",
]
