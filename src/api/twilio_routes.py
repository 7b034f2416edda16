"""Twilio-facing HTTP and WebSocket endpoints.

This module provides:
- Outbound call placement (``POST /outbound-call``).
- The TwiML callback Twilio fetches once the callee answers.
- The bidirectional media stream relayed to ElevenLabs.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, WebSocket
from fastapi.responses import JSONResponse

from api.dependencies import get_provider_connector, get_signed_url_fetcher, get_twilio_client_factory
from api.schemas import ErrorResponse, OutboundCallResponse
from bridge.errors import BridgeError, TelephonyError, ValidationError
from bridge.schemas import CallRequest
from bridge.session import ProviderConnector, RelaySession, SignedUrlFetcher
from config.settings import get_settings
from integrations.twilio_client import TwilioClientFactory, place_call
from integrations.twiml import MEDIA_STREAM_PATH, build_control_document

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["twilio"])

STREAM_PARAMETER_NAMES = ("prompt", "firstMessage", "elevenLabsKey", "agentId")


async def _read_body(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError as exc:
            raise ValidationError(detail="Request body is not valid JSON") from exc
        return payload if isinstance(payload, dict) else {}
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _public_base_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    return f"https://{request.headers.get('host', request.url.netloc)}"


def _error_response(exc: BridgeError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.detail).model_dump(),
    )


def _twiml_response(xml: str) -> Response:
    return Response(content=xml, media_type="text/xml")


@router.post("/outbound-call", response_model=OutboundCallResponse)
async def outbound_call(
    request: Request,
    client_factory: TwilioClientFactory = Depends(get_twilio_client_factory),
):
    try:
        payload = await _read_body(request)
        call_request = CallRequest.from_payload(payload)
        call_sid = await place_call(
            call_request,
            base_url=_public_base_url(request),
            client_factory=client_factory,
        )
    except BridgeError as exc:
        return _error_response(exc)
    except Exception:
        LOGGER.exception("Error initiating call")
        return _error_response(TelephonyError())

    return OutboundCallResponse(call_sid=call_sid)


@router.api_route("/outbound-call-twiml", methods=["GET", "POST"])
async def outbound_call_twiml(request: Request) -> Response:
    query = request.query_params
    body: dict[str, Any] = {}
    if request.method == "POST":
        try:
            body = await _read_body(request)
        except ValidationError as exc:
            LOGGER.warning("Ignoring unreadable TwiML request body: %s", exc.detail)

    values = {name: body.get(name) or query.get(name) for name in STREAM_PARAMETER_NAMES}
    LOGGER.info(
        "TwiML request method=%s call_sid=%s agent_id=%s",
        request.method,
        body.get("CallSid") or query.get("CallSid"),
        values["agentId"],
    )

    settings = get_settings()
    return _twiml_response(
        build_control_document(
            values["prompt"],
            values["firstMessage"],
            values["elevenLabsKey"],
            values["agentId"],
            request.headers.get("host", request.url.netloc),
            public_base_url=settings.public_base_url,
        )
    )


@router.websocket(MEDIA_STREAM_PATH)
async def outbound_media_stream(
    websocket: WebSocket,
    fetch_signed_url: SignedUrlFetcher = Depends(get_signed_url_fetcher),
    connect_provider: ProviderConnector = Depends(get_provider_connector),
) -> None:
    await websocket.accept()
    LOGGER.info("Twilio connected to outbound media stream")

    session = RelaySession(
        websocket,
        fetch_signed_url=fetch_signed_url,
        connect_provider=connect_provider,
    )
    await session.run()
