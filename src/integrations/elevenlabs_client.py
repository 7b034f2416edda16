"""ElevenLabs Conversational AI: signed URL retrieval, WebSocket connect and message codec."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from websockets.asyncio.client import ClientConnection, connect

from bridge.errors import ProviderProtocolError, ProviderUnavailable
from bridge.schemas import StreamParameters
from config.settings import get_settings
from integrations.twilio_streaming import decode_json_object

LOGGER = logging.getLogger(__name__)

SIGNED_URL_PATH = "/v1/convai/conversation/get_signed_url"


async def fetch_signed_url(
    api_key: str,
    agent_id: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Request a short-lived, pre-authenticated conversation WebSocket URL.

    No retries: a failure aborts setup of the calling session.

    Raises:
        ProviderUnavailable: on transport failure or a non-success status.
        ProviderProtocolError: if the body is not JSON or lacks ``signed_url``.
    """

    settings = get_settings()
    url = f"{settings.elevenlabs_api_url.rstrip('/')}{SIGNED_URL_PATH}"
    headers = {"xi-api-key": api_key}
    params = {"agent_id": agent_id}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.elevenlabs_request_timeout) as own_client:
                response = await own_client.get(url, params=params, headers=headers)
        else:
            response = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        LOGGER.error("Signed URL request failed: %s", exc)
        raise ProviderUnavailable(f"Failed to get signed URL: {exc}") from exc

    if not response.is_success:
        raise ProviderUnavailable(f"Failed to get signed URL: {response.reason_phrase}")

    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderProtocolError("Signed URL response is not valid JSON") from exc

    signed_url = data.get("signed_url") if isinstance(data, dict) else None
    if not isinstance(signed_url, str) or not signed_url:
        raise ProviderProtocolError("Signed URL response missing signed_url")
    return signed_url


async def connect_provider(signed_url: str) -> ClientConnection:
    settings = get_settings()
    return await connect(signed_url, open_timeout=settings.elevenlabs_ws_open_timeout)


@dataclass(frozen=True, slots=True)
class InitiationMetadata:
    pass


@dataclass(frozen=True, slots=True)
class AgentAudio:
    payload: str | None


@dataclass(frozen=True, slots=True)
class Interruption:
    pass


@dataclass(frozen=True, slots=True)
class Ping:
    event_id: str | int | None


@dataclass(frozen=True, slots=True)
class UnknownProviderMessage:
    type: str


ProviderMessage = InitiationMetadata | AgentAudio | Interruption | Ping | UnknownProviderMessage


def _audio_payload(message: dict[str, Any]) -> str | None:
    # The provider emits either shape depending on API version.
    audio = message.get("audio")
    if isinstance(audio, dict) and audio.get("chunk"):
        return str(audio["chunk"])
    audio_event = message.get("audio_event")
    if isinstance(audio_event, dict) and audio_event.get("audio_base_64"):
        return str(audio_event["audio_base_64"])
    return None


def parse_provider_message(text: str | bytes) -> ProviderMessage:
    message = decode_json_object(text)
    message_type = str(message.get("type") or "")

    if message_type == "conversation_initiation_metadata":
        return InitiationMetadata()
    if message_type == "audio":
        return AgentAudio(payload=_audio_payload(message))
    if message_type == "interruption":
        return Interruption()
    if message_type == "ping":
        ping_event = message.get("ping_event") or {}
        event_id = ping_event.get("event_id") if isinstance(ping_event, dict) else None
        return Ping(event_id=None if event_id in (None, "") else event_id)
    return UnknownProviderMessage(type=message_type)


def initiation_message(parameters: StreamParameters) -> dict[str, Any]:
    return {
        "type": "conversation_initiation_client_data",
        "conversation_config_override": {
            "agent": {
                "prompt": {"prompt": parameters.prompt},
                "first_message": parameters.first_message,
            },
        },
    }


def user_audio_message(payload: str) -> dict[str, Any]:
    return {"user_audio_chunk": payload}


def pong_message(event_id: str | int) -> dict[str, Any]:
    return {"type": "pong", "event_id": event_id}
