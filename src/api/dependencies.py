"""Shared FastAPI dependencies.

Separated so tests can swap SDK clients and provider connections via
``app.dependency_overrides``.
"""

from __future__ import annotations

from bridge.session import ProviderConnector, SignedUrlFetcher
from integrations.elevenlabs_client import connect_provider, fetch_signed_url
from integrations.twilio_client import TwilioClientFactory, build_twilio_client


def get_twilio_client_factory() -> TwilioClientFactory:
    return build_twilio_client


def get_signed_url_fetcher() -> SignedUrlFetcher:
    return fetch_signed_url


def get_provider_connector() -> ProviderConnector:
    return connect_provider
