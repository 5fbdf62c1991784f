"""Console session handling.

The Console authenticates through NextAuth credentials: a CSRF token is fetched, then
username/password/token are posted to the credentials callback, which answers with a
redirect and sets the session cookie on the shared HTTP client.
"""

import asyncio

import httpx
from pydantic import ValidationError

from jitsu_console.errors import AuthenticationError, MissingCredentialsError
from jitsu_console.logging_config import get_logger
from jitsu_console.schemas import CsrfTokenResponse

logger = get_logger(__name__)

CSRF_PATH = "/api/auth/csrf"
LOGIN_PATH = "/api/auth/callback/credentials"


class SessionManager:
    """Owns the authenticated flag of a Console session.

    The cookie store lives on the ``httpx.AsyncClient`` shared with the request executor.
    The flag is advisory: the Console can still reject a request, see ``invalidate``.
    """

    def __init__(self, http: httpx.AsyncClient, username: str | None, password: str | None):
        self._http = http
        self._username = username
        self._password = password
        self._authenticated = False
        self._lock = asyncio.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    @property
    def cookies(self) -> httpx.Cookies:
        return self._http.cookies

    async def ensure_authenticated(self) -> None:
        """Log in unless a session is already established.

        The lock is held across the whole exchange, so concurrent callers wait for a
        single login instead of racing.

        Raises:
            MissingCredentialsError: If username or password is not configured
            AuthenticationError: If the CSRF fetch or the credential exchange fails
        """
        if not self._username or not self._password:
            raise MissingCredentialsError()

        async with self._lock:
            if self._authenticated:
                return

            csrf_token = await self._fetch_csrf_token()
            await self._exchange_credentials(csrf_token)
            self._authenticated = True
            logger.info("console_session_established", username=self._username)

    async def invalidate(self) -> None:
        """Forget the session so the next ``ensure_authenticated`` logs in again."""
        async with self._lock:
            self._authenticated = False
        logger.debug("console_session_invalidated")

    async def _fetch_csrf_token(self) -> str:
        try:
            resp = await self._http.get(CSRF_PATH)
        except httpx.HTTPError as e:
            raise AuthenticationError(f"requesting CSRF token: {e}") from e

        if not resp.is_success:
            raise AuthenticationError(
                f"GET {resp.request.url} returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )

        try:
            token = CsrfTokenResponse.model_validate_json(resp.content).csrf_token
        except ValidationError as e:
            raise AuthenticationError(f"parsing CSRF response: {e}") from e

        if not token:
            raise AuthenticationError("empty CSRF token in response")
        return token

    async def _exchange_credentials(self, csrf_token: str) -> None:
        form = {
            "username": self._username,
            "password": self._password,
            "csrfToken": csrf_token,
        }
        try:
            # Keep the cookies set by the redirect without following it.
            resp = await self._http.post(LOGIN_PATH, data=form, follow_redirects=False)
        except httpx.HTTPError as e:
            raise AuthenticationError(f"executing login request: {e}") from e

        # NextAuth answers a successful credential login with a 302.
        if not 200 <= resp.status_code < 400:
            raise AuthenticationError(
                f"POST {resp.request.url} returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
        logger.debug("console_login_response", status_code=resp.status_code)
