from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from jitsu_console import ConsoleClient, SoftDeleteReconciler

CONSOLE_URL = "https://console.example.com"
USERNAME = "admin@example.com"
PASSWORD = "secret"  # noqa: S105
SESSION_COOKIE = "next-auth.session-token=sess-1"


@pytest.fixture
def console_mock():
    """Respx mock for the Console API with a working NextAuth login."""
    with respx.mock(base_url=CONSOLE_URL, assert_all_called=False) as respx_mock:
        respx_mock.get("/api/auth/csrf", name="csrf").mock(
            return_value=httpx.Response(httpx.codes.OK, json={"csrfToken": "csrf-token"})
        )
        respx_mock.post("/api/auth/callback/credentials", name="login").mock(
            return_value=httpx.Response(
                httpx.codes.FOUND,
                headers={
                    "Location": f"{CONSOLE_URL}/",
                    "Set-Cookie": f"{SESSION_COOKIE}; Path=/; Secure; HttpOnly",
                },
            )
        )
        yield respx_mock


@pytest.fixture
def reconciler():
    return AsyncMock(spec=SoftDeleteReconciler)


@pytest.fixture
async def client(reconciler):
    client = ConsoleClient(CONSOLE_URL, USERNAME, PASSWORD, reconciler=reconciler)
    yield client
    await client.close()
