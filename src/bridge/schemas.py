"""Pydantic schemas shared by call placement and the media relay."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bridge.errors import ValidationError

# Wire names used by the HTTP API, in the order they are reported when missing.
CALL_REQUEST_FIELDS: tuple[str, ...] = (
    "number",
    "prompt",
    "firstMessage",
    "elevenLabsKey",
    "agentId",
    "twilioSid",
    "twilioToken",
    "fromNumber",
)


class StreamParameters(BaseModel):
    """Values carried through TwiML <Parameter> tags and echoed back at stream start."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    prompt: str = ""
    first_message: str = Field(default="", alias="firstMessage")
    api_key: str = Field(default="", alias="elevenLabsKey")
    agent_id: str = Field(default="", alias="agentId")

    def as_wire(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class CallRequest(BaseModel):
    """Everything needed to place one outbound call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    number: str
    prompt: str
    first_message: str = Field(alias="firstMessage")
    api_key: str = Field(alias="elevenLabsKey")
    agent_id: str = Field(alias="agentId")
    twilio_sid: str = Field(alias="twilioSid")
    twilio_token: str = Field(alias="twilioToken")
    from_number: str = Field(alias="fromNumber")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CallRequest:
        """Build a request from a parsed JSON or form body.

        Raises:
            ValidationError: if any field is absent or blank.
        """

        missing = [name for name in CALL_REQUEST_FIELDS if not _present(payload.get(name))]
        if missing:
            raise ValidationError(missing)
        return cls(**{name: str(payload[name]) for name in CALL_REQUEST_FIELDS})

    @model_validator(mode="after")
    def require_all_fields(self) -> CallRequest:
        self.ensure_complete()
        return self

    def ensure_complete(self) -> None:
        """Raise ``ValidationError`` naming every blank field by its wire name."""

        wire = self.model_dump(by_alias=True)
        missing = [name for name in CALL_REQUEST_FIELDS if not _present(wire.get(name))]
        if missing:
            raise ValidationError(missing)

    @property
    def stream_parameters(self) -> StreamParameters:
        return StreamParameters(
            prompt=self.prompt,
            first_message=self.first_message,
            api_key=self.api_key,
            agent_id=self.agent_id,
        )


def _present(value: Any) -> bool:
    if value is None:
        return False
    return bool(str(value).strip())
