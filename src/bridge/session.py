"""Per-call relay between a Twilio media stream and an ElevenLabs conversation.

One ``RelaySession`` owns exactly two sockets: the inbound Twilio WebSocket it
is constructed with, and the outbound ElevenLabs WebSocket it opens after the
``start`` event. Closing the inbound leg closes the outbound one; the outbound
leg closing or failing leaves the inbound leg open.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from fastapi import WebSocketDisconnect
from websockets.exceptions import ConnectionClosed, WebSocketException

from bridge.errors import BridgeError, MalformedMessageError
from bridge.schemas import StreamParameters
from integrations import elevenlabs_client as provider
from integrations.twilio_streaming import (
    MediaFrame,
    StreamStart,
    StreamStop,
    clear_message,
    media_message,
    parse_twilio_ws_message,
)

LOGGER = logging.getLogger(__name__)


class InboundSocket(Protocol):
    async def receive(self) -> dict[str, Any]: ...

    async def send_text(self, data: str) -> None: ...


class ProviderSocket(Protocol):
    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self): ...


SignedUrlFetcher = Callable[[str, str], Awaitable[str]]
ProviderConnector = Callable[[str], Awaitable[ProviderSocket]]


class SessionStatus(str, enum.Enum):
    AWAITING_START = "awaiting_start"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass(slots=True)
class SessionState:
    status: SessionStatus = SessionStatus.AWAITING_START
    stream_sid: str | None = None
    call_sid: str | None = None
    parameters: StreamParameters | None = None
    provider: ProviderSocket | None = None
    provider_open: bool = False


class RelaySession:
    def __init__(
        self,
        inbound: InboundSocket,
        *,
        fetch_signed_url: SignedUrlFetcher = provider.fetch_signed_url,
        connect_provider: ProviderConnector = provider.connect_provider,
    ) -> None:
        self._inbound = inbound
        self._fetch_signed_url = fetch_signed_url
        self._connect_provider = connect_provider
        self._provider_task: asyncio.Task | None = None
        self.state = SessionState()

    @property
    def provider_task(self) -> asyncio.Task | None:
        return self._provider_task

    async def run(self) -> None:
        """Consume inbound events until Twilio disconnects."""

        try:
            while True:
                message = await self._inbound.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
                await self.handle_inbound_message(message.get("text") or message.get("bytes") or "")
        except WebSocketDisconnect:
            LOGGER.info("Twilio disconnected stream_sid=%s", self.state.stream_sid)
        finally:
            await self.close()

    async def close(self) -> None:
        self.state.status = SessionStatus.CLOSED
        await self._close_provider()

        task = self._provider_task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # Inbound (Twilio) events

    async def handle_inbound_message(self, message: str | bytes) -> None:
        try:
            event = parse_twilio_ws_message(message)
        except MalformedMessageError as exc:
            LOGGER.warning("Ignoring malformed Twilio message: %s", exc.detail)
            return

        if isinstance(event, StreamStart):
            await self._on_start(event)
        elif isinstance(event, MediaFrame):
            await self._on_media(event)
        elif isinstance(event, StreamStop):
            await self._on_stop()
        else:
            LOGGER.info("Unhandled Twilio event: %s", event.event)

    async def _on_start(self, event: StreamStart) -> None:
        if self.state.status is not SessionStatus.AWAITING_START:
            LOGGER.warning(
                "Ignoring start for stream_sid=%s in state %s",
                event.stream_sid,
                self.state.status.value,
            )
            return

        self.state.stream_sid = event.stream_sid
        self.state.call_sid = event.call_sid
        self.state.parameters = event.parameters
        self.state.status = SessionStatus.STREAMING
        LOGGER.info("Stream started stream_sid=%s call_sid=%s", event.stream_sid, event.call_sid)

        self._provider_task = asyncio.create_task(self._run_provider(event.parameters))

    async def _on_media(self, event: MediaFrame) -> None:
        if self.state.status is not SessionStatus.STREAMING or not self.state.provider_open:
            LOGGER.debug("Dropping media frame; provider not connected")
            return
        await self._send_provider(provider.user_audio_message(event.payload))

    async def _on_stop(self) -> None:
        LOGGER.info("Stream stopped stream_sid=%s", self.state.stream_sid)
        self.state.status = SessionStatus.CLOSED
        await self._close_provider()

    # Outbound (ElevenLabs) events

    async def _run_provider(self, parameters: StreamParameters) -> None:
        try:
            signed_url = await self._fetch_signed_url(parameters.api_key, parameters.agent_id)
            ws = await self._connect_provider(signed_url)
        except BridgeError as exc:
            LOGGER.error("ElevenLabs setup failed for stream_sid=%s: %s", self.state.stream_sid, exc.detail)
            return
        except (OSError, WebSocketException) as exc:
            LOGGER.error("ElevenLabs connection failed for stream_sid=%s: %s", self.state.stream_sid, exc)
            return
        except Exception:
            LOGGER.exception("ElevenLabs setup crashed for stream_sid=%s", self.state.stream_sid)
            return

        if self.state.status is SessionStatus.CLOSED:
            # Twilio left while we were connecting.
            await ws.close()
            return

        self.state.provider = ws
        try:
            await ws.send(json.dumps(provider.initiation_message(parameters)))
            self.state.provider_open = True
            LOGGER.info("Connected to ElevenLabs stream_sid=%s", self.state.stream_sid)
            async for message in ws:
                await self.handle_provider_message(message)
        except ConnectionClosed as exc:
            LOGGER.warning("ElevenLabs connection closed with error: %s", exc)
        except Exception:
            LOGGER.exception("ElevenLabs relay crashed for stream_sid=%s", self.state.stream_sid)
        finally:
            self.state.provider_open = False
            LOGGER.info("ElevenLabs disconnected stream_sid=%s", self.state.stream_sid)

    async def handle_provider_message(self, message: str | bytes) -> None:
        try:
            event = provider.parse_provider_message(message)
        except MalformedMessageError as exc:
            LOGGER.warning("Ignoring malformed ElevenLabs message: %s", exc.detail)
            return

        if isinstance(event, provider.InitiationMetadata):
            LOGGER.info("Received conversation initiation metadata")
        elif isinstance(event, provider.AgentAudio):
            if event.payload is None:
                LOGGER.debug("Audio message without payload")
            elif self.state.stream_sid:
                await self._send_inbound(media_message(self.state.stream_sid, event.payload))
            else:
                LOGGER.debug("Dropping agent audio; no stream_sid yet")
        elif isinstance(event, provider.Interruption):
            if self.state.stream_sid:
                await self._send_inbound(clear_message(self.state.stream_sid))
        elif isinstance(event, provider.Ping):
            if event.event_id is not None:
                await self._send_provider(provider.pong_message(event.event_id))
        else:
            LOGGER.info("Unhandled ElevenLabs message type: %s", event.type)

    # Socket helpers

    async def _send_provider(self, payload: dict[str, Any]) -> None:
        ws = self.state.provider
        if ws is None or not self.state.provider_open:
            return
        try:
            await ws.send(json.dumps(payload))
        except ConnectionClosed as exc:
            LOGGER.warning("ElevenLabs send failed; connection closed: %s", exc)
            self.state.provider_open = False

    async def _send_inbound(self, payload: dict[str, Any]) -> None:
        if self.state.status is SessionStatus.CLOSED:
            return
        try:
            await self._inbound.send_text(json.dumps(payload))
        except (WebSocketDisconnect, RuntimeError) as exc:
            LOGGER.warning("Twilio send failed: %s", exc)

    async def _close_provider(self) -> None:
        ws = self.state.provider
        if ws is None:
            return
        self.state.provider = None
        self.state.provider_open = False
        await ws.close()
