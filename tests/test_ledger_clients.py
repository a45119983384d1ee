from __future__ import annotations

import httpx
import pytest

from ledger_clients import EtherscanLedgerClient, LedgerAPIError, PageWindow, create_ledger_client
from settings import LedgerSettings
from trustgate_models import DataUnavailable, InvalidInput

from conftest import OTHER, SUBJECT

BASE_URL = "https://api.etherscan.test/v2/api"


def record(index: int = 0, *, value: str = "1500000000000000000", **extra) -> dict:
    item = {
        "hash": f"0x{index:064x}",
        "from": SUBJECT,
        "to": OTHER,
        "value": value,
        "timeStamp": str(1_700_000_000 - index),
        "isError": "0",
        "blockNumber": str(18_000_000 - index),
    }
    item.update(extra)
    return item


def ok(result) -> httpx.Response:
    return httpx.Response(200, json={"status": "1", "message": "OK", "result": result})


class Recorder:
    """Serves queued responses and remembers every request."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(request)
        return outcome


def make_client(handler, **kwargs):
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    session = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    options = {"api_key": "SECRET", "base_url": BASE_URL, "max_attempts": 3}
    options.update(kwargs)
    client = EtherscanLedgerClient(session=session, sleep=fake_sleep, **options)
    return client, session, sleeps


@pytest.mark.asyncio
async def test_transactions_are_parsed():
    recorder = Recorder(ok([record(0), record(1, value="0", isError="1")]))
    client, session, _ = make_client(recorder)

    async with session:
        transactions = await client.get_transactions(SUBJECT)

    assert len(transactions) == 2
    first = transactions[0]
    assert first.from_address == SUBJECT
    assert first.to_address == OTHER
    assert first.value == pytest.approx(1.5)
    assert first.timestamp == 1_700_000_000_000
    assert first.metadata["block_number"] == "18000000"
    assert transactions[1].is_error is True
    assert transactions[1].value == 0.0


@pytest.mark.asyncio
async def test_request_parameters():
    recorder = Recorder(ok([]))
    client, session, _ = make_client(recorder, chain_id=11155111)

    async with session:
        await client.get_transactions(SUBJECT)
        await client.get_internal_transactions(SUBJECT)
        await client.get_token_transfers(SUBJECT)
        await client.get_nft_transfers(SUBJECT)

    params = [request.url.params for request in recorder.requests]
    assert [p["action"] for p in params] == ["txlist", "txlistinternal", "tokentx", "tokennfttx"]
    first = params[0]
    assert first["module"] == "account"
    assert first["address"] == SUBJECT
    assert first["chainid"] == "11155111"
    assert first["apikey"] == "SECRET"
    assert first["startblock"] == "0"
    assert first["endblock"] == "99999999"
    assert first["sort"] == "desc"
    assert first["page"] == "1"
    assert first["offset"] == "1000"
    assert "startblock" not in params[1]


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["No transactions found", "No records found", "No token transfers found"])
async def test_no_records_is_an_empty_list(message):
    recorder = Recorder(httpx.Response(200, json={"status": "0", "message": message, "result": []}))
    client, session, sleeps = make_client(recorder)

    async with session:
        assert await client.get_transactions(SUBJECT) == []

    assert len(recorder.requests) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_rate_limit_is_retried_with_backoff():
    recorder = Recorder(
        httpx.Response(429, json={}),
        httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}),
        ok([record()]),
    )
    client, session, sleeps = make_client(recorder)

    async with session:
        transactions = await client.get_transactions(SUBJECT)

    assert len(transactions) == 1
    assert len(recorder.requests) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_retries_raise_data_unavailable():
    recorder = Recorder(httpx.Response(500, text="boom"))
    client, session, sleeps = make_client(recorder)

    async with session:
        with pytest.raises(DataUnavailable) as excinfo:
            await client.get_transactions(SUBJECT)

    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.__cause__, LedgerAPIError)
    assert excinfo.value.__cause__.status_code == 500
    assert len(recorder.requests) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_timeouts_and_network_errors_are_retried():
    request = httpx.Request("GET", BASE_URL)
    recorder = Recorder(
        httpx.ReadTimeout("timed out", request=request),
        httpx.ConnectError("refused", request=request),
        ok([]),
    )
    client, session, sleeps = make_client(recorder)

    async with session:
        assert await client.get_internal_transactions(SUBJECT) == []

    assert len(recorder.requests) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_malformed_body_is_retried():
    recorder = Recorder(
        httpx.Response(200, content=b"<html>gateway</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
        ok([record()]),
    )
    client, session, _ = make_client(recorder)

    async with session:
        assert len(await client.get_token_transfers(SUBJECT)) == 1

    assert len(recorder.requests) == 3


@pytest.mark.asyncio
async def test_api_key_never_appears_in_error_message():
    recorder = Recorder(httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Invalid API Key"}))
    client, session, _ = make_client(recorder, max_attempts=1)

    async with session:
        with pytest.raises(DataUnavailable) as excinfo:
            await client.get_transactions(SUBJECT)

    assert "Invalid API Key" in str(excinfo.value)
    assert "SECRET" not in str(excinfo.value)


def test_backoff_is_capped():
    client = EtherscanLedgerClient(api_key=None, backoff_base=1.0, backoff_max=3.0, max_attempts=5)

    assert [client.backoff_delay(attempt) for attempt in range(1, 5)] == [1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_pages_until_short_page():
    def respond(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        size = {1: 2, 2: 2, 3: 1}[page]
        return ok([record(page * 10 + index) for index in range(size)])

    recorder = Recorder(respond)
    client, session, _ = make_client(recorder, page_size=2, max_pages=5)

    async with session:
        transactions = await client.get_transactions(SUBJECT)

    assert len(transactions) == 5
    assert [request.url.params["page"] for request in recorder.requests] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_explicit_window_fetches_single_page():
    recorder = Recorder(ok([record()]))
    client, session, _ = make_client(recorder, max_pages=5)

    async with session:
        await client.get_transactions(SUBJECT, PageWindow(page=2, offset=50))

    assert len(recorder.requests) == 1
    assert recorder.requests[0].url.params["page"] == "2"
    assert recorder.requests[0].url.params["offset"] == "50"


def test_page_window_validation():
    with pytest.raises(ValueError):
        PageWindow(page=0)


@pytest.mark.asyncio
async def test_get_balance():
    recorder = Recorder(ok("2500000000000000000"))
    client, session, _ = make_client(recorder)

    async with session:
        assert await client.get_balance(SUBJECT) == 2_500_000_000_000_000_000

    params = recorder.requests[0].url.params
    assert params["action"] == "balance"
    assert params["tag"] == "latest"


@pytest.mark.asyncio
async def test_empty_address_rejected_without_request():
    recorder = Recorder(ok([]))
    client, session, _ = make_client(recorder)

    async with session:
        with pytest.raises(InvalidInput):
            await client.get_transactions("  ")

    assert recorder.requests == []


def test_create_ledger_client_from_settings():
    client = create_ledger_client(LedgerSettings(api_key="k", network="polygon", max_attempts=5))

    assert client.service_id == "polygonscan"
    assert client.service_name == "Polygonscan API"
    assert client.max_attempts == 5


def test_create_ledger_client_rejects_invalid_settings():
    with pytest.raises(ValueError):
        create_ledger_client(LedgerSettings(network="moonbase"))


@pytest.mark.asyncio
@pytest.mark.parametrize("stamp", [None, "", "yesterday", "-5"])
async def test_record_without_usable_timestamp_is_malformed(stamp):
    item = record()
    if stamp is None:
        del item["timeStamp"]
    else:
        item["timeStamp"] = stamp
    recorder = Recorder(ok([item]))
    client, session, _ = make_client(recorder, max_attempts=2)

    async with session:
        with pytest.raises(DataUnavailable) as excinfo:
            await client.get_transactions(SUBJECT)

    assert "timestamp" in str(excinfo.value)
    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_malformed_timestamp_recovers_on_retry():
    broken = record()
    broken["timeStamp"] = "n/a"
    recorder = Recorder(ok([broken]), ok([record()]))
    client, session, sleeps = make_client(recorder)

    async with session:
        transactions = await client.get_transactions(SUBJECT)

    assert [tx.timestamp for tx in transactions] == [1_700_000_000_000]
    assert sleeps == [1.0]
