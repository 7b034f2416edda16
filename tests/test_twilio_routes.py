from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient
from twilio.base.exceptions import TwilioRestException

from fakes import FakeProviderFactory

CALL_BODY = {
    "number": "+41791234567",
    "prompt": "Sell & upsell = win",
    "firstMessage": "Grüezi!",
    "elevenLabsKey": "xi-key",
    "agentId": "agent-1",
    "twilioSid": "AC123",
    "twilioToken": "token",
    "fromNumber": "+15005550006",
}


class FakeTwilioCall:
    def __init__(self, sid: str) -> None:
        self.sid = sid


class FakeTwilioCalls:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.created: list[dict] = []

    def create(self, *, to: str, from_: str, url: str):
        self.created.append({"to": to, "from_": from_, "url": url})
        if self.error is not None:
            raise self.error
        return FakeTwilioCall("CA123")


class FakeTwilioClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = FakeTwilioCalls(error)


@pytest.fixture()
def twilio_client(app):
    import api.dependencies as deps

    fake = FakeTwilioClient()
    app.dependency_overrides[deps.get_twilio_client_factory] = lambda: (lambda sid, token: fake)
    yield fake
    app.dependency_overrides.clear()


def test_outbound_call_accepts_json_body(app, twilio_client):
    with TestClient(app) as client:
        resp = client.post("/outbound-call", json=CALL_BODY, headers={"host": "bridge.example.com"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "callSid": "CA123"}

    [created] = twilio_client.calls.created
    assert created["to"] == "+41791234567"
    callback = urlsplit(created["url"])
    assert callback.netloc == "bridge.example.com"
    assert parse_qs(callback.query)["prompt"] == ["Sell & upsell = win"]
    assert parse_qs(callback.query)["firstMessage"] == ["Grüezi!"]


def test_outbound_call_accepts_form_body(app, twilio_client):
    with TestClient(app) as client:
        resp = client.post("/outbound-call", data=CALL_BODY)

    assert resp.status_code == 200
    assert resp.json()["callSid"] == "CA123"


def test_outbound_call_missing_parameters_returns_400_without_dialing(app, twilio_client):
    body = dict(CALL_BODY)
    body.pop("twilioToken")

    with TestClient(app) as client:
        resp = client.post("/outbound-call", json=body)

    assert resp.status_code == 400
    payload = resp.json()
    assert payload["success"] is False
    assert "twilioToken" in payload["error"]
    assert twilio_client.calls.created == []


def test_outbound_call_surfaces_twilio_message_as_500(app):
    import api.dependencies as deps

    error = TwilioRestException(400, "/Calls.json", msg="The 'To' number +1 is not a valid phone number.")
    fake = FakeTwilioClient(error=error)
    app.dependency_overrides[deps.get_twilio_client_factory] = lambda: (lambda sid, token: fake)

    with TestClient(app) as client:
        resp = client.post("/outbound-call", json=CALL_BODY)

    app.dependency_overrides.clear()
    assert resp.status_code == 500
    assert resp.json() == {
        "success": False,
        "error": "The 'To' number +1 is not a valid phone number.",
    }


def _stream_parameters(xml: str) -> tuple[str | None, dict[str, str | None]]:
    stream = ET.fromstring(xml).find("./Connect/Stream")
    assert stream is not None
    return stream.get("url"), {p.get("name"): p.get("value") for p in stream.findall("Parameter")}


def test_twiml_get_reads_query_string(client):
    resp = client.get(
        "/outbound-call-twiml",
        params={"prompt": "Hi", "firstMessage": "Hello", "elevenLabsKey": "K1", "agentId": "A1"},
        headers={"host": "example.com"},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/xml")
    url, params = _stream_parameters(resp.text)
    assert url == "wss://example.com/outbound-media-stream"
    assert params == {"prompt": "Hi", "firstMessage": "Hello", "elevenLabsKey": "K1", "agentId": "A1"}


def test_twiml_post_reads_body_and_falls_back_to_query(client):
    resp = client.post(
        "/outbound-call-twiml?agentId=A1&elevenLabsKey=K1",
        data={"CallSid": "CA1", "prompt": "Be brief & kind", "firstMessage": "Hello"},
        headers={"host": "example.com"},
    )

    assert resp.status_code == 200
    _, params = _stream_parameters(resp.text)
    assert params == {
        "prompt": "Be brief & kind",
        "firstMessage": "Hello",
        "elevenLabsKey": "K1",
        "agentId": "A1",
    }


def test_twiml_does_not_validate_parameters(client):
    resp = client.get("/outbound-call-twiml", headers={"host": "example.com"})

    assert resp.status_code == 200
    _, params = _stream_parameters(resp.text)
    assert params == {"prompt": "", "firstMessage": "", "elevenLabsKey": "", "agentId": ""}


def test_media_stream_endpoint_tolerates_malformed_and_unknown_messages(app):
    import api.dependencies as deps

    factory = FakeProviderFactory()
    app.dependency_overrides[deps.get_signed_url_fetcher] = lambda: factory.fetch_signed_url
    app.dependency_overrides[deps.get_provider_connector] = lambda: factory.connect

    with TestClient(app) as client:
        with client.websocket_connect("/outbound-media-stream") as ws:
            ws.send_text("{not json")
            ws.send_text(json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"}))
            ws.send_text(json.dumps({"event": "media", "media": {"payload": "QUJD"}}))
            ws.send_text(json.dumps({"event": "stop"}))

    app.dependency_overrides.clear()
    assert factory.fetch_calls == []


def test_media_stream_endpoint_survives_binary_frames(app):
    import api.dependencies as deps

    factory = FakeProviderFactory()
    app.dependency_overrides[deps.get_signed_url_fetcher] = lambda: factory.fetch_signed_url
    app.dependency_overrides[deps.get_provider_connector] = lambda: factory.connect

    with TestClient(app) as client:
        with client.websocket_connect("/outbound-media-stream") as ws:
            ws.send_bytes(b"\x00\x01")
            ws.send_text(json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"}))

    app.dependency_overrides.clear()
    assert factory.connect_calls == []
