# gptrelay/api/server.py
"""
FastAPI server for webhook mode:

- POST /       : Telegram webhook (one update per request)
- GET  /health : basic health check

The endpoint is a plain (sync) function, so FastAPI runs it on its worker
threads; the state store serializes work per chat.
"""

import time
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field

from gptrelay.clients.telegram_client import TelegramClient, TelegramError, parse_update
from gptrelay.core.router import CommandRouter
from gptrelay.utils.logging import get_logger

logger = get_logger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class TelegramUpdate(BaseModel):
    update_id: int = Field(..., description="Monotonic Bot API update id.")
    message: Optional[Dict[str, Any]] = Field(default=None, description="New incoming message.")
    edited_message: Optional[Dict[str, Any]] = Field(default=None, description="Edited message.")


class WebhookResponse(BaseModel):
    ok: bool = True
    delivered: int = Field(0, description="Number of replies sent back to Telegram.")


class HealthResponse(BaseModel):
    status: str = "ok"

# ---------------------------------------------------------------------------
# Update processing
# ---------------------------------------------------------------------------

def process_update(router: CommandRouter, client: TelegramClient, update: Dict[str, Any]) -> int:
    """
    Route one Bot API update and send every resulting message.
    Returns the number of messages delivered.
    """
    inbound = parse_update(update)
    if inbound is None:
        return 0

    delivered = 0
    for outbound in router.handle(inbound):
        try:
            client.send_message(outbound)
            delivered += 1
        except TelegramError as e:
            logger.error("Failed to send message to chat %d (dialect=%s, force_reply=%s): %s text=%r",
                         outbound.chat_id, outbound.dialect.value, outbound.force_reply, e, outbound.text[:200])
    return delivered


def create_app(
    router: CommandRouter,
    client: TelegramClient,
    secret_token: Optional[str] = None,
) -> FastAPI:
    app = FastAPI(
        title="gptrelay",
        description="Telegram webhook relay to a chat-completion backend.",
        version="1.0.0",
    )

    @app.post("/", response_model=WebhookResponse)
    def telegram_webhook(
        update: TelegramUpdate,
        request: Request,
        x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
    ) -> WebhookResponse:
        if secret_token and x_telegram_bot_api_secret_token != secret_token:
            logger.warning("Rejected webhook call with bad secret from %s",
                           request.client.host if request.client else "unknown")
            raise HTTPException(status_code=401, detail="Invalid secret token")

        request_id = str(uuid.uuid4())
        start_time = time.monotonic()
        logger.info("[webhook] request_id=%s update_id=%d", request_id, update.update_id)

        try:
            delivered = process_update(router, client, update.model_dump(exclude_none=True))
        except Exception:
            # Any 2xx stops Telegram from redelivering the update.
            logger.exception("[webhook] request_id=%s failed to process update_id=%d", request_id, update.update_id)
            return WebhookResponse(ok=False, delivered=0)

        latency_ms = int((time.monotonic() - start_time) * 1000)
        logger.info("[webhook] request_id=%s OK latency_ms=%d delivered=%d", request_id, latency_ms, delivered)
        return WebhookResponse(ok=True, delivered=delivered)

    @app.get("/health", response_model=HealthResponse)
    def health_check() -> HealthResponse:
        return HealthResponse()

    return app
