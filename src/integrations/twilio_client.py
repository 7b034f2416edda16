"""Outbound call placement through the Twilio REST API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import quote, urlencode

from twilio.base.exceptions import TwilioException, TwilioRestException

from bridge.errors import TelephonyError
from bridge.schemas import CallRequest

LOGGER = logging.getLogger(__name__)

TWIML_PATH = "/outbound-call-twiml"

TwilioClientFactory = Callable[[str, str], Any]


def build_twilio_client(account_sid: str, auth_token: str):
    from twilio.rest import Client

    return Client(account_sid, auth_token)


def build_callback_url(base_url: str, request: CallRequest) -> str:
    """Return the TwiML callback URL with the stream parameters in its query string.

    Values are percent-encoded with ``quote`` so spaces become ``%20`` and
    ``&``/``=``/non-ASCII text survive a decode unchanged.
    """

    query = urlencode(request.stream_parameters.as_wire(), quote_via=quote)
    return f"{base_url.rstrip('/')}{TWIML_PATH}?{query}"


async def place_call(
    request: CallRequest,
    *,
    base_url: str,
    client_factory: TwilioClientFactory = build_twilio_client,
) -> str:
    """Ask Twilio to dial ``request.number`` and return the new call SID.

    The Twilio SDK is synchronous, so the request runs in a worker thread.

    Raises:
        ValidationError: if any field is blank; Twilio is not contacted.
        TelephonyError: if Twilio rejects the call.
    """

    request.ensure_complete()
    callback_url = build_callback_url(base_url, request)
    client = client_factory(request.twilio_sid, request.twilio_token)

    try:
        call = await asyncio.to_thread(
            client.calls.create,
            from_=request.from_number,
            to=request.number,
            url=callback_url,
        )
    except TwilioRestException as exc:
        LOGGER.error("Twilio rejected call to %s (status=%s): %s", request.number, exc.status, exc.msg)
        raise TelephonyError(exc.msg or None) from exc
    except TwilioException as exc:
        LOGGER.error("Twilio call creation failed: %s", exc)
        raise TelephonyError(str(exc) or None) from exc

    LOGGER.info("Placed outbound call sid=%s to=%s", call.sid, request.number)
    return str(call.sid)
