"""Authenticated request execution against the Console API."""

from http import HTTPStatus
from typing import Any

import httpx

from jitsu_console.errors import AuthenticationError, TransportError
from jitsu_console.logging_config import get_logger
from jitsu_console.session import SessionManager

logger = get_logger(__name__)

AUTH_FAILURE_STATUSES = frozenset({HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN})


def is_auth_failure(status_code: int) -> bool:
    return status_code in AUTH_FAILURE_STATUSES


class RequestExecutor:
    """Sends requests with the session cookie, re-authenticating once on 401/403.

    Responses are returned whatever their status; interpreting them is up to the caller.
    Server errors are never retried here.
    """

    def __init__(self, http: httpx.AsyncClient, session: SessionManager):
        self._http = http
        self._session = session

    async def execute(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request, refreshing the session once if it was rejected.

        Args:
            method: HTTP method
            path: Path below the console URL, starting with /api/
            json: Optional JSON body
            params: Optional query parameters

        Returns:
            The final response

        Raises:
            AuthenticationError: If login fails or the retried request is rejected again
            TransportError: If the request cannot be sent or times out
        """
        await self._session.ensure_authenticated()

        retried = False
        while True:
            resp = await self._send(method, path, json=json, params=params)
            if not is_auth_failure(resp.status_code):
                return resp

            if retried:
                raise AuthenticationError(
                    f"{method} {resp.request.url} returned {resp.status_code} after "
                    f"re-authenticating: {resp.text}",
                    status_code=resp.status_code,
                )

            # Session cookies expire server-side; log in again and retry once.
            logger.warning(
                "console_auth_rejected_retrying",
                method=method,
                url=str(resp.request.url),
                status_code=resp.status_code,
            )
            await self._session.invalidate()
            try:
                await self._session.ensure_authenticated()
            except AuthenticationError as e:
                raise AuthenticationError(
                    f"re-authenticating after {resp.status_code} response: {e}",
                    status_code=e.status_code,
                ) from e
            retried = True

    async def _send(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        logger.debug("console_api_request", method=method, path=path)
        try:
            resp = await self._http.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise TransportError(method, path, str(e) or type(e).__name__) from e

        logger.debug(
            "console_api_response",
            method=method,
            path=path,
            status_code=resp.status_code,
        )
        return resp
