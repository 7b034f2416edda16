"""TwiML documents returned to Twilio."""

from __future__ import annotations

from xml.sax.saxutils import quoteattr

from bridge.schemas import StreamParameters

MEDIA_STREAM_PATH = "/outbound-media-stream"


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def media_stream_url(host: str, *, public_base_url: str | None = None) -> str:
    if public_base_url:
        return _to_ws_url(public_base_url.rstrip("/")) + MEDIA_STREAM_PATH
    return f"wss://{host}{MEDIA_STREAM_PATH}"


def build_control_document(
    prompt: str | None,
    first_message: str | None,
    api_key: str | None,
    agent_id: str | None,
    host: str,
    *,
    public_base_url: str | None = None,
) -> str:
    """Return TwiML connecting the call to our bidirectional media stream.

    Values are not validated; a missing value is rendered as an empty parameter.
    """

    params = StreamParameters(
        prompt=prompt or "",
        first_message=first_message or "",
        api_key=api_key or "",
        agent_id=agent_id or "",
    )
    stream_url = media_stream_url(host, public_base_url=public_base_url)
    parameter_tags = "".join(
        f"<Parameter name={quoteattr(name)} value={quoteattr(value)} />"
        for name, value in params.as_wire().items()
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url={quoteattr(stream_url)}>"
        f"{parameter_tags}"
        "</Stream>"
        "</Connect>"
        "</Response>"
    )
