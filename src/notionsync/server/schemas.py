"""Pydantic schemas for the webhook endpoint."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError


class HealthResponse(BaseModel):
    """Response for the liveness probe."""

    status: str


class AckResponse(BaseModel):
    """Acknowledgement of a webhook notification."""

    ok: bool = True


class ErrorResponse(BaseModel):
    """Error body for rejected requests."""

    error: str


class WebhookEntity(BaseModel):
    """Object a notification is about."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    type: str | None = None


class WebhookNotification(BaseModel):
    """Decoded webhook body. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None
    verification_token: str | None = None
    entity: WebhookEntity | None = None

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> WebhookNotification:
        """Build from a JSON object, ignoring malformed optional fields."""
        entity: WebhookEntity | None = None
        if isinstance(body.get("entity"), dict):
            try:
                entity = WebhookEntity.model_validate(body["entity"])
            except ValidationError:
                entity = None
        return cls(
            type=body.get("type") if isinstance(body.get("type"), str) else None,
            verification_token=(
                str(body["verification_token"]) if body.get("verification_token") else None
            ),
            entity=entity,
        )
