# gptrelay/main.py
"""
gptrelay CLI entrypoint.

Default behavior:
- Long-poll Telegram for updates and answer them one at a time.

Options:
- --webhook     : register WEBHOOK_URL and serve the FastAPI app instead
                  (same as USE_WEBHOOK=true)
- --port        : webhook server port (default: GPTRELAY_PORT or 8080)
- --storage     : override GPTRELAY_STORAGE (sqlite | memory)
- --no-history  : do not persist chat history
"""

from __future__ import annotations

import argparse
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import uvicorn

from gptrelay.api.server import create_app, process_update
from gptrelay.clients.openai_client import CompletionClient
from gptrelay.clients.telegram_client import TelegramClient, TelegramError
from gptrelay.config.settings import Settings, load_settings
from gptrelay.core.chat import CompletionDispatcher
from gptrelay.core.models import ModelDescriptor, load_models, model_families
from gptrelay.core.modes import ModeDescriptor, load_modes
from gptrelay.core.router import CommandRouter
from gptrelay.core.state import StateStore
from gptrelay.core.tokens import TokenAccountant
from gptrelay.memory.repository import (
    ConversationRepository,
    InMemoryConversationRepository,
    SqliteConversationRepository,
)
from gptrelay.utils.logging import get_logger

logger = get_logger(__name__)

POLL_ERROR_PAUSE_SEC = 5.0


@dataclass
class Application:
    models: Dict[str, ModelDescriptor]
    modes: Dict[str, ModeDescriptor]
    repository: ConversationRepository
    store: StateStore
    dispatcher: CompletionDispatcher
    router: CommandRouter
    telegram: TelegramClient


def build_repository(settings: Settings) -> ConversationRepository:
    if settings.storage == "memory":
        logger.info("Using in-memory storage; state is lost on restart.")
        return InMemoryConversationRepository()
    Path(settings.db_path).parent.mkdir(parents=True, exist_ok=True)
    repo = SqliteConversationRepository(settings.db_path)
    repo.initialize()
    logger.info("Using SQLite storage at %s", settings.db_path)
    return repo


def build_application(
    settings: Settings,
    telegram: Optional[TelegramClient] = None,
    backend: Optional[CompletionClient] = None,
    accountant: Optional[TokenAccountant] = None,
) -> Application:
    models = load_models(settings.models_path)
    modes = load_modes(settings.modes_path)
    logger.info("Loaded %d models and %d modes.", len(models), len(modes))

    repository = build_repository(settings)
    store = StateStore(repository, models, modes)
    accountant = accountant or TokenAccountant(model_families(models))
    backend = backend or CompletionClient(
        api_key=settings.openai_api_key,
        base_url=settings.server_url,
        timeout=settings.openai_timeout_seconds,
    )
    dispatcher = CompletionDispatcher(
        store=store,
        backend=backend,
        accountant=accountant,
        models=models,
        modes=modes,
        history=repository if settings.persist_history else None,
    )
    router = CommandRouter(store, dispatcher, models, modes)
    telegram = telegram or TelegramClient(settings.telegram_token)
    return Application(
        models=models,
        modes=modes,
        repository=repository,
        store=store,
        dispatcher=dispatcher,
        router=router,
        telegram=telegram,
    )


def run_polling(app: Application, poll_timeout: int, max_batches: Optional[int] = None) -> None:
    """
    Pull updates and process each one to completion before the next.
    `max_batches` bounds the loop (used by tests); None runs forever.
    """
    app.telegram.delete_webhook()
    offset: Optional[int] = None
    batches = 0
    logger.info("Polling for updates (timeout=%ds).", poll_timeout)
    while max_batches is None or batches < max_batches:
        batches += 1
        try:
            updates = app.telegram.get_updates(offset=offset, timeout=poll_timeout)
        except TelegramError as e:
            logger.error("getUpdates failed: %s", e)
            time.sleep(POLL_ERROR_PAUSE_SEC)
            continue
        for update in updates:
            offset = int(update["update_id"]) + 1
            try:
                process_update(app.router, app.telegram, update)
            except Exception:
                logger.exception("Failed to process update %s; skipping it.", update.get("update_id"))


def serve_webhook(app: Application, settings: Settings, port: int) -> None:
    app.telegram.set_webhook(settings.webhook_url, secret_token=settings.webhook_secret)
    api = create_app(app.router, app.telegram, secret_token=settings.webhook_secret)
    logger.info("Listening on :%d", port)
    uvicorn.run(api, host="0.0.0.0", port=port)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Relay Telegram messages to a chat-completion backend.")
    p.add_argument("--webhook", action="store_true", help="Serve a webhook instead of long polling.")
    p.add_argument("--port", type=int, default=None, help="Webhook server port.")
    p.add_argument("--storage", choices=["sqlite", "memory"], default=None, help="Storage backend.")
    p.add_argument("--no-history", action="store_true", help="Do not persist chat history.")
    return p


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.storage:
        settings.storage = args.storage
    if args.no_history:
        settings.persist_history = False

    app = build_application(settings)
    me = app.telegram.get_me()
    logger.info("Authorized on account %s", me.get("username"))

    if args.webhook or settings.use_webhook:
        if not settings.webhook_url:
            raise RuntimeError("Webhook mode requires WEBHOOK_URL")
        serve_webhook(app, settings, args.port or settings.port)
    else:
        run_polling(app, settings.poll_timeout_seconds)


if __name__ == "__main__":
    main()
