"""Jitsu Console API client.

CRUD and list operations for configuration objects (streams, destinations, functions),
links and workspaces. Payloads are plain dicts; the Console validates them.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from http import HTTPStatus
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError
from structlog.contextvars import bound_contextvars

from jitsu_console.config import DEFAULT_USER_AGENT, Settings, get_settings
from jitsu_console.errors import (
    APIError,
    ConflictError,
    ConsoleClientError,
    ProtocolError,
    RollbackError,
)
from jitsu_console.executor import RequestExecutor
from jitsu_console.logging_config import get_logger, setup_logging
from jitsu_console.reconciler import DEFAULT_SCHEMA, SoftDeleteReconciler, TableKind
from jitsu_console.schemas import ConfigListEnvelope, StreamKey, WorkspaceCreated
from jitsu_console.session import SessionManager

logger = get_logger(__name__)

SOFT_DELETE_CONFLICT_SIGNATURE = "Unique constraint failed"
WORKSPACE_ACCESS_FK_SIGNATURE = "WorkspaceAccess_userId_fkey"


def _segment(value: str) -> str:
    return quote(value, safe="")


def _raise_for_status(resp: httpx.Response, hint: str | None = None) -> None:
    if not resp.is_success:
        raise APIError(resp.request.method, str(resp.request.url), resp.status_code, resp.text, hint)


def _decode(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise ProtocolError(
            f"{resp.request.method} {resp.request.url}: unparseable response body: {e}"
        ) from e


def _decode_object(resp: httpx.Response) -> dict[str, Any]:
    data = _decode(resp)
    if not isinstance(data, dict):
        raise ProtocolError(
            f"{resp.request.method} {resp.request.url}: expected a JSON object, "
            f"got {type(data).__name__}"
        )
    return data


def _is_soft_deleted(item: dict[str, Any]) -> bool:
    return item.get("deleted") is True


class ConsoleClient:
    """Client for the Jitsu Console API.

    Usage:
        async with ConsoleClient.from_settings() as client:
            await client.create("ws1", "destination", {"id": "dst1", "name": "warehouse"})
    """

    def __init__(
        self,
        console_url: str,
        username: str | None = None,
        password: str | None = None,
        database_url: str | None = None,
        *,
        database_schema: str = DEFAULT_SCHEMA,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        reconciler: SoftDeleteReconciler | None = None,
    ) -> None:
        self.console_url = console_url.rstrip("/")
        if not self.console_url.startswith("https://"):
            logger.warning(
                "console_url_insecure",
                console_url=self.console_url,
                detail="credentials will be sent unencrypted",
            )

        self._http = httpx.AsyncClient(
            base_url=self.console_url,
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )
        self.session = SessionManager(self._http, username, password)
        self.executor = RequestExecutor(self._http, self.session)
        self.reconciler = reconciler or SoftDeleteReconciler(database_url, schema=database_schema)

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, *, configure_logging: bool = False
    ) -> ConsoleClient:
        """Build a client from ``JITSU_*`` settings.

        With ``configure_logging`` the process-wide structlog setup is applied from the
        settings' service name, format and level. Leave it off when the host tool owns logging.
        """
        settings = settings or get_settings()
        if configure_logging:
            setup_logging(settings.service_name, settings.log_format, settings.log_level)
        return cls(
            settings.console_url,
            settings.username,
            settings.password,
            settings.database_url,
            database_schema=settings.database_schema,
            user_agent=settings.user_agent,
            timeout=settings.request_timeout,
        )

    async def close(self) -> None:
        """Close the HTTP client and the database pool, if one was opened."""
        await self._http.aclose()
        await self.reconciler.close()

    async def __aenter__(self) -> ConsoleClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Paths ---

    def _config_path(self, workspace_id: str, resource_type: str) -> str:
        return f"/api/{_segment(workspace_id)}/config/{_segment(resource_type)}"

    def _config_item_path(self, workspace_id: str, resource_type: str, id: str) -> str:
        return f"{self._config_path(workspace_id, resource_type)}/{_segment(id)}"

    def _workspace_path(self) -> str:
        return "/api/workspace"

    def _workspace_item_path(self, id_or_slug: str) -> str:
        return f"/api/workspace/{_segment(id_or_slug)}"

    # --- Configuration objects ---

    async def create(
        self, workspace_id: str, resource_type: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a configuration object.

        If a soft-deleted row with the same ID blocks the insert, the row is hard-deleted
        through the database and the POST is retried once.

        Raises:
            ConflictError: If the soft-delete collision could not be cleared
            APIError: If the Console rejects the request
        """
        path = self._config_path(workspace_id, resource_type)
        with bound_contextvars(workspace_id=workspace_id, resource_type=resource_type):
            resp = await self.executor.execute("POST", path, json=payload)

            if self._is_soft_delete_conflict(resp):
                await self._clear_soft_delete_conflict(path, resource_type, payload)
                resp = await self.executor.execute("POST", path, json=payload)

            _raise_for_status(resp)
            logger.info("config_object_created", id=payload.get("id"))
            return _decode_object(resp)

    @staticmethod
    def _is_soft_delete_conflict(resp: httpx.Response) -> bool:
        return (
            resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
            and SOFT_DELETE_CONFLICT_SIGNATURE in resp.text
        )

    async def _clear_soft_delete_conflict(
        self, path: str, resource_type: str, payload: dict[str, Any]
    ) -> None:
        object_id = payload.get("id")
        if not isinstance(object_id, str) or not object_id:
            raise ConflictError(
                f"POST {path} returned soft-delete conflict but payload has no 'id' field"
            )

        logger.warning("soft_delete_conflict_detected", id=object_id, path=path)
        try:
            await self.reconciler.purge_soft_deleted(
                object_id, TableKind.for_resource_type(resource_type)
            )
        except ConsoleClientError as e:
            raise ConflictError(
                f"POST {path} failed (soft-delete conflict on {object_id!r}) and cleanup failed: {e}"
            ) from e

    async def read(
        self, workspace_id: str, resource_type: str, id: str
    ) -> dict[str, Any] | None:
        """Fetch a configuration object. Returns None if it is missing or soft-deleted."""
        path = self._config_item_path(workspace_id, resource_type, id)
        resp = await self.executor.execute("GET", path)
        if resp.status_code == HTTPStatus.NOT_FOUND:
            return None
        _raise_for_status(resp)

        result = _decode_object(resp)
        if _is_soft_deleted(result):
            return None
        return result

    async def update(
        self, workspace_id: str, resource_type: str, id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        path = self._config_item_path(workspace_id, resource_type, id)
        resp = await self.executor.execute("PUT", path, json=payload)
        _raise_for_status(resp)
        return _decode_object(resp)

    async def delete(self, workspace_id: str, resource_type: str, id: str) -> None:
        """Delete a configuration object (a soft-delete on the Console side)."""
        path = self._config_item_path(workspace_id, resource_type, id)
        resp = await self.executor.execute("DELETE", path)
        _raise_for_status(resp)
        logger.info(
            "config_object_deleted", workspace_id=workspace_id, resource_type=resource_type, id=id
        )

    async def list(self, workspace_id: str, resource_type: str) -> list[dict[str, Any]]:
        """List configuration objects of one type.

        The Console wraps links in ``links`` and everything else in ``objects``.

        Raises:
            ProtocolError: If neither key is present
        """
        path = self._config_path(workspace_id, resource_type)
        resp = await self.executor.execute("GET", path)
        _raise_for_status(resp)
        try:
            envelope = ConfigListEnvelope.model_validate_json(resp.content)
        except ValidationError as e:
            raise ProtocolError(f"GET {resp.request.url}: {e}") from e
        return envelope.items

    # --- Links ---

    async def delete_link(self, workspace_id: str, link_id: str) -> None:
        """Delete a link through the query-parameter variant of the endpoint."""
        path = self._config_path(workspace_id, "link")
        resp = await self.executor.execute("DELETE", path, params={"id": link_id})
        _raise_for_status(resp)
        logger.info("link_deleted", workspace_id=workspace_id, id=link_id)

    async def find_link(
        self, workspace_id: str, from_id: str, to_id: str
    ) -> dict[str, Any] | None:
        """Return the live link between two objects, or None."""
        for link in await self.list(workspace_id, "link"):
            if _is_soft_deleted(link):
                continue
            if link.get("fromId") == from_id and link.get("toId") == to_id:
                return link
        return None

    # --- Streams ---

    async def create_stream(
        self,
        workspace_id: str,
        stream_id: str,
        name: str,
        public_keys: Iterable[StreamKey | dict[str, str]] | None = None,
        private_keys: Iterable[StreamKey | dict[str, str]] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a stream, then set its write keys in a follow-up update.

        The Console only accepts plaintext key material on update. If that update fails,
        the new stream is deleted again.

        Raises:
            pydantic.ValidationError: If a key lacks ``id`` or ``plaintext`` (nothing is created)
            RollbackError: If setting the keys failed; reports whether the delete succeeded
        """
        # Validate before creating so bad keys never leave an orphaned stream.
        pub = [StreamKey.model_validate(k) for k in public_keys or ()]
        priv = [StreamKey.model_validate(k) for k in private_keys or ()]

        payload = {
            **(extra or {}),
            "id": stream_id,
            "workspaceId": workspace_id,
            "type": "stream",
            "name": name,
        }
        created = await self.create(workspace_id, "stream", payload)
        if not pub and not priv:
            return created

        update_payload = dict(payload)
        if pub:
            update_payload["publicKeys"] = [k.model_dump() for k in pub]
        if priv:
            update_payload["privateKeys"] = [k.model_dump() for k in priv]

        try:
            return await self.update(workspace_id, "stream", stream_id, update_payload)
        except ConsoleClientError as e:
            raise await self._rollback(
                "stream", stream_id, e, lambda: self.delete(workspace_id, "stream", stream_id)
            ) from e

    # --- Workspaces ---

    async def create_workspace(self, name: str, slug: str) -> str:
        """Create a workspace and return its ID.

        The create endpoint may drop ``slug``, so the same name/slug is written again with
        an update. If that update fails the workspace is deleted again.

        Raises:
            RollbackError: If the follow-up update failed; reports whether the delete succeeded
        """
        payload = {"name": name, "slug": slug}
        resp = await self.executor.execute("POST", self._workspace_path(), json=payload)
        if not resp.is_success:
            hint = None
            if (
                resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
                and WORKSPACE_ACCESS_FK_SIGNATURE in resp.text
            ):
                hint = "workspace creation failed due to missing/invalid user session context"
            _raise_for_status(resp, hint)

        try:
            workspace_id = WorkspaceCreated.model_validate_json(resp.content).id
        except ValidationError as e:
            raise ProtocolError(f"POST {resp.request.url} did not return workspace id: {e}") from e

        try:
            await self.update_workspace(workspace_id, name, slug)
        except ConsoleClientError as e:
            raise await self._rollback(
                "workspace", workspace_id, e, lambda: self.delete_workspace(workspace_id)
            ) from e

        logger.info("workspace_created", workspace_id=workspace_id, slug=slug)
        return workspace_id

    async def read_workspace(self, id_or_slug: str) -> dict[str, Any] | None:
        """Fetch a workspace by ID or slug. Returns None if it is missing or deleted."""
        resp = await self.executor.execute("GET", self._workspace_item_path(id_or_slug))
        if resp.status_code == HTTPStatus.NOT_FOUND:
            return None
        _raise_for_status(resp)

        result = _decode_object(resp)
        if _is_soft_deleted(result):
            return None
        return result

    async def update_workspace(self, id_or_slug: str, name: str, slug: str) -> dict[str, Any]:
        payload = {"name": name, "slug": slug}
        resp = await self.executor.execute(
            "PUT", self._workspace_item_path(id_or_slug), json=payload
        )
        _raise_for_status(resp)
        return _decode_object(resp)

    async def delete_workspace(self, workspace_id: str) -> None:
        """Soft-delete a workspace. A workspace that is already gone is not an error."""
        resp = await self.executor.execute(
            "DELETE", self._workspace_path(), json={"workspaceId": workspace_id}
        )
        if resp.status_code == HTTPStatus.NOT_FOUND:
            return
        _raise_for_status(resp)
        logger.info("workspace_deleted", workspace_id=workspace_id)

    async def list_workspaces(self) -> list[dict[str, Any]]:
        resp = await self.executor.execute("GET", self._workspace_path())
        _raise_for_status(resp)

        data = _decode(resp)
        if isinstance(data, dict):
            data = data.get("workspaces")
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise ProtocolError(f"GET {resp.request.url}: unexpected workspace list format")
        return data

    # --- Compensation ---

    async def _rollback(
        self,
        resource: str,
        resource_id: str,
        original: ConsoleClientError,
        undo: Callable[[], Awaitable[None]],
    ) -> RollbackError:
        try:
            await undo()
        except ConsoleClientError as rollback_error:
            logger.error(
                "rollback_failed",
                resource=resource,
                resource_id=resource_id,
                error=str(rollback_error),
            )
            return RollbackError(resource, resource_id, original, rollback_error)

        logger.warning("rolled_back_partial_create", resource=resource, resource_id=resource_id)
        return RollbackError(resource, resource_id, original)
