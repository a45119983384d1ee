"""Indexing-service clients that retrieve raw account activity.

Every fetch separates two outcomes: a list (possibly empty, when the service
answers "no records") or a :class:`trustgate_models.DataUnavailable` raised
once the retry budget is spent.  Callers never inspect error messages to tell
an inactive address from an outage.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable, Iterable, List, Mapping

import httpx

from settings import LedgerSettings
from trustgate_models import DataUnavailable, InvalidInput, LedgerTransaction

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

_NO_RECORD_MESSAGES = ("no transactions found", "no records found", "no token transfers found")


class LedgerAPIError(RuntimeError):
    """Raised when a single request to the indexing service fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class PageWindow:
    """One page of results, ``offset`` records per page, newest first."""

    page: int = 1
    offset: int = 1000

    def __post_init__(self) -> None:
        if self.page < 1 or self.offset < 1:
            raise ValueError("page and offset must be positive")


class _BaseLedgerClient:
    """Common request, timeout and retry handling for ledger clients."""

    def __init__(
        self,
        *,
        service_id: str,
        display_name: str,
        session: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 8.0,
        sleep: SleepFunc | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.service_id = service_id
        self.service_name = display_name
        self._session = session
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._sleep = sleep or asyncio.sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def backoff_delay(self, attempt: int) -> float:
        """Return the pause after failed ``attempt`` (1-based), doubling each time."""

        return min(self._backoff_max, self._backoff_base * (2 ** (attempt - 1)))

    async def _request_json(
        self,
        url: str,
        *,
        params: Mapping[str, object] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Mapping[str, object]:
        close_session = False
        session = self._session
        if session is None:
            session = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
            close_session = True
        try:
            response = await session.get(url, params=params, headers=headers, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise LedgerAPIError(
                f"HTTP {exc.response.status_code} from {self.service_name}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.TimeoutException as exc:
            raise LedgerAPIError(f"Timed out after {self._timeout}s talking to {self.service_name}") from exc
        except httpx.HTTPError as exc:
            raise LedgerAPIError(f"Network error talking to {self.service_name}: {exc}") from exc
        except ValueError as exc:
            raise LedgerAPIError(f"Malformed JSON body from {self.service_name}") from exc
        finally:
            if close_session:
                await session.aclose()
        if not isinstance(data, Mapping):
            raise LedgerAPIError(f"Unexpected response from {self.service_name}: expected a JSON object")
        return data

    async def _with_retries(
        self,
        description: str,
        operation: Callable[[], Awaitable[object]],
    ) -> object:
        last_error: LedgerAPIError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await operation()
            except LedgerAPIError as exc:
                last_error = exc
                if attempt >= self._max_attempts:
                    break
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "%s failed on attempt %d/%d (%s); retrying in %.2fs",
                    description,
                    attempt,
                    self._max_attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay)
        raise DataUnavailable(
            f"{description} failed after {self._max_attempts} attempt(s): {last_error}",
            action=description,
            attempts=self._max_attempts,
        ) from last_error


class EtherscanLedgerClient(_BaseLedgerClient):
    """Ledger client for the Etherscan V2 multichain account API."""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.etherscan.io/v2/api",
        chain_id: int | None = 1,
        page_size: int = 1000,
        max_pages: int = 1,
        session: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 8.0,
        sleep: SleepFunc | None = None,
        service_id: str = "etherscan",
    ) -> None:
        display_name = "Polygonscan API" if service_id == "polygonscan" else "Etherscan API"
        super().__init__(
            service_id=service_id,
            display_name=display_name,
            session=session,
            timeout=timeout,
            max_attempts=max_attempts,
            backoff_base=backoff_base,
            backoff_max=backoff_max,
            sleep=sleep,
        )
        self._api_key = api_key
        self._base_url = base_url
        self._chain_id = chain_id
        self._page_size = page_size
        self._max_pages = max_pages

    async def get_transactions(
        self, address: str, window: PageWindow | None = None
    ) -> List[LedgerTransaction]:
        return await self._fetch_records("txlist", address, window, {"startblock": 0, "endblock": 99999999})

    async def get_internal_transactions(
        self, address: str, window: PageWindow | None = None
    ) -> List[LedgerTransaction]:
        return await self._fetch_records("txlistinternal", address, window)

    async def get_token_transfers(
        self, address: str, window: PageWindow | None = None
    ) -> List[LedgerTransaction]:
        return await self._fetch_records("tokentx", address, window)

    async def get_nft_transfers(
        self, address: str, window: PageWindow | None = None
    ) -> List[LedgerTransaction]:
        return await self._fetch_records("tokennfttx", address, window)

    async def get_balance(self, address: str) -> int:
        """Return the native balance of ``address`` in wei."""

        _require_address(address)
        params = self._base_params("balance", address)
        params["tag"] = "latest"

        async def _attempt() -> int:
            payload = await self._request_json(self._base_url, params=params)
            result = self._unwrap(payload)
            try:
                return int(str(result))
            except ValueError as exc:
                raise LedgerAPIError(f"Unexpected balance value {result!r}") from exc

        return await self._with_retries(f"balance({address})", _attempt)  # type: ignore[return-value]

    async def _fetch_records(
        self,
        action: str,
        address: str,
        window: PageWindow | None,
        extra: Mapping[str, object] | None = None,
    ) -> List[LedgerTransaction]:
        _require_address(address)
        if window is not None:
            return await self._fetch_page(action, address, window, extra)

        records: List[LedgerTransaction] = []
        for page in range(1, self._max_pages + 1):
            batch = await self._fetch_page(action, address, PageWindow(page, self._page_size), extra)
            records.extend(batch)
            if len(batch) < self._page_size:
                break
        return records

    async def _fetch_page(
        self,
        action: str,
        address: str,
        window: PageWindow,
        extra: Mapping[str, object] | None,
    ) -> List[LedgerTransaction]:
        params = self._base_params(action, address)
        params.update(extra or {})
        params.update({"page": window.page, "offset": window.offset, "sort": "desc"})

        async def _attempt() -> List[LedgerTransaction]:
            payload = await self._request_json(self._base_url, params=params)
            result = self._unwrap(payload)
            if not isinstance(result, Iterable) or isinstance(result, (str, bytes)):
                raise LedgerAPIError(f"Unexpected {action} result type {type(result).__name__}")
            return [_to_transaction(item) for item in result if isinstance(item, Mapping)]

        description = f"{action}({address}, page={window.page})"
        records = await self._with_retries(description, _attempt)
        return records  # type: ignore[return-value]

    def _base_params(self, action: str, address: str) -> dict[str, object]:
        params: dict[str, object] = {"module": "account", "action": action, "address": address}
        if self._chain_id is not None:
            params["chainid"] = self._chain_id
        if self._api_key:
            params["apikey"] = self._api_key
        return params

    @staticmethod
    def _unwrap(payload: Mapping[str, object]) -> object:
        """Return ``result`` from an Etherscan envelope or raise a retryable error."""

        status = str(payload.get("status") or "0")
        message = str(payload.get("message") or "")
        result = payload.get("result")
        if status == "1":
            return result if result is not None else []
        if message.strip().lower() in _NO_RECORD_MESSAGES:
            return []
        detail = str(result or "")
        if detail and detail.lower() != message.lower():
            error_text = f"{message} ({detail})"
        else:
            error_text = message or detail or "Unknown error"
        raise LedgerAPIError(f"Etherscan API returned an error: {error_text}")


def create_ledger_client(
    settings: LedgerSettings,
    *,
    session: httpx.AsyncClient | None = None,
    sleep: SleepFunc | None = None,
) -> EtherscanLedgerClient:
    """Instantiate the ledger client described by ``settings``."""

    problems = settings.validate()
    if problems:
        raise ValueError("; ".join(problems))
    return EtherscanLedgerClient(
        api_key=settings.api_key,
        base_url=settings.endpoint,
        chain_id=settings.chain_id,
        page_size=settings.page_size,
        max_pages=settings.max_pages,
        session=session,
        timeout=settings.timeout,
        max_attempts=settings.max_attempts,
        backoff_base=settings.backoff_base,
        backoff_max=settings.backoff_max,
        sleep=sleep,
        service_id="polygonscan" if settings.network == "polygon" else "etherscan",
    )


def _require_address(address: str) -> None:
    if not isinstance(address, str) or not address.strip():
        raise InvalidInput("address must be a non-empty string")


def _to_transaction(item: Mapping[str, object]) -> LedgerTransaction:
    return LedgerTransaction(
        tx_hash=str(item.get("hash") or ""),
        from_address=_safe_address(item.get("from")),
        to_address=_safe_address(item.get("to")),
        value=_wei_to_native(item.get("value")),
        timestamp=_coerce_timestamp(item.get("timeStamp"), multiplier=1000),
        contract_address=_safe_address(item.get("contractAddress")),
        is_error=str(item.get("isError") or "0") == "1",
        metadata={
            "block_number": item.get("blockNumber"),
            "token_symbol": item.get("tokenSymbol"),
        },
    )


def _coerce_timestamp(value: object, *, multiplier: float = 1.0) -> int:
    """Return ``value`` scaled to an int; a record without a usable time is malformed."""

    if value is None or isinstance(value, bool):
        raise LedgerAPIError(f"Record has no usable timestamp: {value!r}")
    try:
        timestamp = int(float(str(value)) * multiplier)
    except (TypeError, ValueError, OverflowError) as exc:
        raise LedgerAPIError(f"Record has no usable timestamp: {value!r}") from exc
    if timestamp < 0:
        raise LedgerAPIError(f"Record has a negative timestamp: {value!r}")
    return timestamp


def _safe_address(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _wei_to_native(value: object) -> float:
    try:
        return float(value) / 1_000_000_000_000_000_000  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


__all__ = [
    "EtherscanLedgerClient",
    "LedgerAPIError",
    "PageWindow",
    "create_ledger_client",
]
