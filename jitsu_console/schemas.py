"""Pydantic schemas for Jitsu Console API payloads.

Object payloads stay plain dicts; the Console serves several object types through one
generic endpoint. Only the envelopes the client itself inspects are modeled here.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CsrfTokenResponse(BaseModel):
    """Response of GET /api/auth/csrf."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    csrf_token: str = Field("", alias="csrfToken", description="Anti-forgery token for login")


class ConfigListEnvelope(BaseModel):
    """Response of GET /api/{workspaceId}/config/{type}.

    Links come back under ``links``, every other type under ``objects``.
    """

    model_config = ConfigDict(extra="ignore")

    objects: list[dict[str, Any]] | None = None
    links: list[dict[str, Any]] | None = None

    @model_validator(mode="after")
    def require_wrapper_key(self) -> "ConfigListEnvelope":
        if self.objects is None and self.links is None:
            raise ValueError("unexpected response format: no 'objects' or 'links' key")
        return self

    @property
    def items(self) -> list[dict[str, Any]]:
        if self.links is not None:
            return self.links
        return self.objects or []


class WorkspaceCreated(BaseModel):
    """Response of POST /api/workspace."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1, description="Workspace ID assigned by the Console")


class StreamKey(BaseModel):
    """Stream (event source) write key sent in plaintext on the follow-up update."""

    id: str = Field(..., min_length=1, description="Key ID")
    plaintext: str = Field(..., min_length=1, description="Secret key material")
