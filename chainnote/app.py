"""
Webhook HTTP boundary.

Endpoints:
    - POST /webhook  LINE deliveries
    - other methods on /webhook and /: liveness probe (200 "ok")

Response codes for POST /webhook:
    - 500 required configuration missing, nothing is read
    - 403 signature mismatch, checked on the raw body before parsing
    - 200 acknowledged; notes are processed after the response is sent

LINE expects an answer within a couple of seconds, so the pipeline runs
as a background task. Its outcome reaches the user through the reply
API, never through this response.

Usage:
    uvicorn chainnote.app:create_app --factory
"""

from __future__ import annotations

import json
import logging

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import PlainTextResponse

from chainnote.config import Settings, get_settings
from chainnote.errors import AuthenticationError, ConfigurationError
from chainnote.logging_config import configure_logging
from chainnote.pipeline import NotePipeline
from chainnote.webhook.events import parse_events
from chainnote.webhook.signature import SIGNATURE_HEADER, verify_signature

logger = logging.getLogger(__name__)

# Anything but POST on the webhook path is a liveness probe.
LIVENESS_METHODS = ["GET", "HEAD", "PUT", "DELETE", "PATCH", "OPTIONS"]


def authenticate(raw: bytes, signature: str | None, settings: Settings) -> None:
    """Raise AuthenticationError unless the delivery signature verifies."""
    if not verify_signature(raw, signature, settings.line_channel_secret or ""):
        raise AuthenticationError("invalid webhook signature")


def create_app(
    settings: Settings | None = None,
    *,
    pipeline: NotePipeline | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Configuration. Loaded from the environment if None.
        pipeline: Pre-wired pipeline (tests). Built from settings on the
            first delivery otherwise.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.pipeline = pipeline

    def get_pipeline() -> NotePipeline:
        if app.state.pipeline is None:
            app.state.pipeline = NotePipeline.from_settings(settings)
        return app.state.pipeline

    @app.api_route("/", methods=LIVENESS_METHODS, response_class=PlainTextResponse)
    @app.api_route("/webhook", methods=LIVENESS_METHODS, response_class=PlainTextResponse)
    async def liveness() -> str:
        return "ok"

    @app.post("/webhook", response_class=PlainTextResponse)
    async def webhook(request: Request, background_tasks: BackgroundTasks) -> PlainTextResponse:
        try:
            settings.require()
            note_pipeline = get_pipeline()
        except ConfigurationError as exc:
            logger.error("webhook refused: %s", exc.message)
            return PlainTextResponse(exc.message, status_code=500)

        raw = await request.body()
        try:
            authenticate(raw, request.headers.get(SIGNATURE_HEADER), settings)
        except AuthenticationError:
            logger.warning("webhook signature mismatch")
            return PlainTextResponse("forbidden", status_code=403)

        try:
            body = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("webhook body is not valid JSON; acknowledged and dropped")
            return PlainTextResponse("ok")

        events = parse_events(body)
        if events:
            background_tasks.add_task(note_pipeline.process_events, events)
        return PlainTextResponse("ok")

    return app
