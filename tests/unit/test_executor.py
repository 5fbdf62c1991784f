"""Tests for the re-authenticating request executor."""

import asyncio
import json

import httpx
import pytest

from jitsu_console.errors import AuthenticationError, TransportError
from jitsu_console.executor import RequestExecutor, is_auth_failure
from jitsu_console.session import SessionManager
from tests.conftest import CONSOLE_URL, PASSWORD, USERNAME

ITEM_PATH = "/api/ws1/config/destination/dst1"


@pytest.fixture
async def executor():
    http = httpx.AsyncClient(base_url=CONSOLE_URL, follow_redirects=True)
    yield RequestExecutor(http, SessionManager(http, USERNAME, PASSWORD))
    await http.aclose()


def test_is_auth_failure():
    assert is_auth_failure(401)
    assert is_auth_failure(403)
    assert not is_auth_failure(404)
    assert not is_auth_failure(500)


@pytest.mark.asyncio
async def test_authenticates_before_first_request(executor, console_mock):
    route = console_mock.get(ITEM_PATH).mock(return_value=httpx.Response(200, json={"id": "dst1"}))

    resp = await executor.execute("GET", ITEM_PATH)

    assert resp.status_code == 200
    assert console_mock["login"].call_count == 1
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_sends_json_body(executor, console_mock):
    route = console_mock.put(ITEM_PATH).mock(return_value=httpx.Response(200, json={}))

    await executor.execute("PUT", ITEM_PATH, json={"name": "warehouse"})

    request = route.calls.last.request
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"name": "warehouse"}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_single_auth_failure_reauthenticates_and_retries(executor, console_mock, status):
    route = console_mock.get(ITEM_PATH)
    route.side_effect = [
        httpx.Response(status),
        httpx.Response(200, json={"id": "dst1"}),
    ]

    resp = await executor.execute("GET", ITEM_PATH)

    assert resp.status_code == 200
    assert route.call_count == 2
    assert console_mock["login"].call_count == 2


@pytest.mark.asyncio
async def test_second_auth_failure_is_not_retried(executor, console_mock):
    route = console_mock.get(ITEM_PATH).mock(return_value=httpx.Response(403, text="forbidden"))

    with pytest.raises(AuthenticationError) as exc_info:
        await executor.execute("GET", ITEM_PATH)

    assert exc_info.value.status_code == 403
    assert route.call_count == 2
    assert console_mock["login"].call_count == 2


@pytest.mark.asyncio
async def test_reauthentication_failure_is_surfaced(executor, console_mock):
    route = console_mock.get(ITEM_PATH).mock(return_value=httpx.Response(401))
    console_mock["login"].side_effect = [
        httpx.Response(302, headers={"Location": f"{CONSOLE_URL}/"}),
        httpx.Response(401, text="CredentialsSignin"),
    ]

    with pytest.raises(AuthenticationError, match="re-authenticating after 401"):
        await executor.execute("GET", ITEM_PATH)

    assert route.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [404, 500, 503])
async def test_other_statuses_are_returned_without_retry(executor, console_mock, status):
    route = console_mock.get(ITEM_PATH).mock(return_value=httpx.Response(status))

    resp = await executor.execute("GET", ITEM_PATH)

    assert resp.status_code == status
    assert route.call_count == 1
    assert console_mock["login"].call_count == 1


@pytest.mark.asyncio
async def test_transport_error(executor, console_mock):
    console_mock.get(ITEM_PATH).side_effect = httpx.ReadTimeout("timed out")

    with pytest.raises(TransportError) as exc_info:
        await executor.execute("GET", ITEM_PATH)

    assert exc_info.value.method == "GET"
    assert exc_info.value.url == ITEM_PATH
    assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)


async def stall(request):
    await asyncio.sleep(10)
    return httpx.Response(200, json={})


@pytest.fixture
async def http():
    client = httpx.AsyncClient(base_url=CONSOLE_URL, follow_redirects=True)
    yield client
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("stalled_route", ["csrf", "login"])
async def test_deadline_during_login_propagates(http, console_mock, stalled_route):
    session = SessionManager(http, USERNAME, PASSWORD)
    executor = RequestExecutor(http, session)
    console_mock[stalled_route].side_effect = stall
    route = console_mock.get(ITEM_PATH).mock(return_value=httpx.Response(200, json={}))

    with pytest.raises(TimeoutError) as exc_info:
        async with asyncio.timeout(0.05):
            await executor.execute("GET", ITEM_PATH)

    assert not isinstance(exc_info.value, (AuthenticationError, TransportError))
    assert not session.is_authenticated
    assert not route.called


@pytest.mark.asyncio
async def test_cancellation_during_request_propagates(http, console_mock):
    session = SessionManager(http, USERNAME, PASSWORD)
    executor = RequestExecutor(http, session)
    started = asyncio.Event()

    async def slow_item(request):
        started.set()
        await asyncio.sleep(10)
        return httpx.Response(200, json={})

    route = console_mock.get(ITEM_PATH)
    route.side_effect = slow_item

    task = asyncio.create_task(executor.execute("GET", ITEM_PATH))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert started.is_set()
    assert session.is_authenticated
