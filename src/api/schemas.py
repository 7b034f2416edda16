"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OutboundCallResponse(BaseModel):
    success: bool = True
    call_sid: str = Field(serialization_alias="callSid")


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
