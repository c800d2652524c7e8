# gptrelay/config/settings.py

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Expose BASE_DIR for other modules
BASE_DIR = Path(__file__).resolve().parents[2]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

CONFIG_DIR = BASE_DIR / "gptrelay" / "config"
MODELS_PATH = CONFIG_DIR / "models.json"
MODES_PATH = CONFIG_DIR / "modes.json"

ALLOWED_STORAGE = {"sqlite", "memory"}


@dataclass
class Settings:
    # Gateway + backend credentials
    telegram_token: str
    openai_api_key: str
    server_url: str = "https://api.openai.com"

    # Webhook mode (polling is the default)
    use_webhook: bool = False
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    port: int = 8080

    # Storage
    storage: str = "sqlite"
    db_path: str = str(BASE_DIR / "gptrelay" / "data" / "gptrelay.db")
    persist_history: bool = True

    # Catalogs
    models_path: str = str(MODELS_PATH)
    modes_path: str = str(MODES_PATH)

    # Transport knobs
    openai_timeout_seconds: float = 60.0
    poll_timeout_seconds: int = 60


def _parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _parse_int_env(name: str, default: int, min_val: int = 0, max_val: int = 65535) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
        return max(min_val, min(max_val, value))
    except ValueError:
        return default


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """
    Load configuration from environment variables (and defaults).
    Raises a RuntimeError if required settings are missing.
    Also ensures the DB directory exists when SQLite storage is selected.
    """
    # --- Required: credentials ---
    telegram_token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    if not telegram_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set in .env or environment")

    api_key = os.getenv("OPENAI_API_KEY", "").strip()
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY is not set in .env or environment")

    server_url = os.getenv("SERVER_URL", "").strip() or "https://api.openai.com"

    # --- Webhook ---
    use_webhook = _parse_bool_env("USE_WEBHOOK", False)
    webhook_url = os.getenv("WEBHOOK_URL", "").strip() or None
    if use_webhook and not webhook_url:
        raise RuntimeError("USE_WEBHOOK is enabled but WEBHOOK_URL is not set")
    webhook_secret = os.getenv("WEBHOOK_SECRET", "").strip() or None

    # --- Storage ---
    storage = os.getenv("GPTRELAY_STORAGE", "sqlite").strip().lower() or "sqlite"
    if storage not in ALLOWED_STORAGE:
        raise RuntimeError(f"GPTRELAY_STORAGE must be one of {sorted(ALLOWED_STORAGE)}, got {storage!r}")

    default_db_path = BASE_DIR / "gptrelay" / "data" / "gptrelay.db"
    db_path = Path(os.getenv("GPTRELAY_DB_PATH", "").strip() or default_db_path)
    if storage == "sqlite":
        db_path.parent.mkdir(parents=True, exist_ok=True)

    settings = Settings(
        telegram_token=telegram_token,
        openai_api_key=api_key,
        server_url=server_url,
        use_webhook=use_webhook,
        webhook_url=webhook_url,
        webhook_secret=webhook_secret,
        port=_parse_int_env("GPTRELAY_PORT", 8080, min_val=1),
        storage=storage,
        db_path=str(db_path),
        persist_history=_parse_bool_env("GPTRELAY_PERSIST_HISTORY", True),
        models_path=os.getenv("GPTRELAY_MODELS_PATH", "").strip() or str(MODELS_PATH),
        modes_path=os.getenv("GPTRELAY_MODES_PATH", "").strip() or str(MODES_PATH),
        openai_timeout_seconds=_parse_float_env("OPENAI_TIMEOUT_SECONDS", 60.0),
        poll_timeout_seconds=_parse_int_env("TELEGRAM_POLL_TIMEOUT", 60, min_val=0, max_val=600),
    )

    return settings
