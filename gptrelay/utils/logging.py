# gptrelay/utils/logging.py

import logging
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[2]

LOG_DIR = Path(os.getenv("GPTRELAY_LOG_DIR", "").strip() or BASE_DIR / "gptrelay" / "logs")
LOG_FILE = LOG_DIR / "gptrelay.log"


def get_logger(name: str = "gptrelay") -> logging.Logger:
    """
    Return a logger that logs both to file and console.
    Avoids adding duplicate handlers on repeated imports.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger  # avoid duplicate handlers

    logger.setLevel(logging.INFO)

    fmt = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # File handler (skipped when the log dir is not writable, e.g. read-only installs)
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(LOG_FILE, encoding="utf-8")
    except OSError:
        fh = None
    if fh is not None:
        fh.setLevel(logging.INFO)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(fmt)
    logger.addHandler(ch)
    return logger
