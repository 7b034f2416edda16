"""Entry point for the Twilio to ElevenLabs outbound call bridge."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from api.twilio_routes import router as twilio_router
from config.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Outbound Voice Bridge",
    description="Places Twilio calls and relays their audio to an ElevenLabs conversational agent.",
)
app.include_router(twilio_router)


def main() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
