"""Twilio Media Streams message codec.

Inbound events are parsed into a closed set of variants; anything the relay
does not act on becomes ``UnknownStreamEvent`` so new event kinds never break
a session.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from bridge.errors import MalformedMessageError
from bridge.schemas import StreamParameters


@dataclass(frozen=True, slots=True)
class StreamStart:
    stream_sid: str
    call_sid: str
    parameters: StreamParameters = field(default_factory=StreamParameters)


@dataclass(frozen=True, slots=True)
class MediaFrame:
    payload: str


@dataclass(frozen=True, slots=True)
class StreamStop:
    pass


@dataclass(frozen=True, slots=True)
class UnknownStreamEvent:
    event: str


StreamEvent = StreamStart | MediaFrame | StreamStop | UnknownStreamEvent


def decode_json_object(text: str | bytes) -> dict[str, Any]:
    """Decode one WebSocket text frame into a JSON object."""

    try:
        message = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedMessageError(f"Invalid JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedMessageError("Expected a JSON object")
    return message


def parse_twilio_ws_message(text: str | bytes) -> StreamEvent:
    message = decode_json_object(text)
    event = str(message.get("event") or "")

    if event == "start":
        start = message.get("start")
        if not isinstance(start, dict):
            raise MalformedMessageError("start event without start payload")
        custom = start.get("customParameters") or {}
        if not isinstance(custom, dict):
            raise MalformedMessageError("customParameters must be an object")
        return StreamStart(
            stream_sid=str(start.get("streamSid") or message.get("streamSid") or ""),
            call_sid=str(start.get("callSid") or ""),
            parameters=StreamParameters.model_validate(
                {key: str(value) for key, value in custom.items() if value is not None}
            ),
        )

    if event == "media":
        media = message.get("media") or {}
        payload = media.get("payload") if isinstance(media, dict) else None
        if not isinstance(payload, str):
            raise MalformedMessageError("media event without payload")
        return MediaFrame(payload=payload)

    if event == "stop":
        return StreamStop()

    return UnknownStreamEvent(event=event)


def media_message(stream_sid: str, payload: str) -> dict[str, Any]:
    return {"event": "media", "streamSid": stream_sid, "media": {"payload": payload}}


def clear_message(stream_sid: str) -> dict[str, Any]:
    """Tell Twilio to drop audio it has buffered for playback (barge-in)."""

    return {"event": "clear", "streamSid": stream_sid}
