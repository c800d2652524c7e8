# gptrelay/core/modes.py

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Union

from gptrelay.core.formatting import Dialect

DEFAULT_MODE_ID = "assistant"


@dataclass(frozen=True)
class ModeDescriptor:
    id: str
    name: str
    welcome: str
    prompt: str                  # system prompt prefix; "" means no system message
    dialect: Dialect = Dialect.HTML


def parse_modes(raw: list) -> Dict[str, ModeDescriptor]:
    """
    Build the mode catalog from decoded JSON. Raises ValueError on bad entries.
    The default "assistant" mode must be present.
    """
    if not isinstance(raw, list):
        raise ValueError("mode catalog must be a JSON list")

    modes: Dict[str, ModeDescriptor] = {}
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict) or not entry.get("id"):
            raise ValueError(f"invalid mode entry at index {i}: {entry!r}")
        mode_id = str(entry["id"]).strip()
        if mode_id in modes:
            raise ValueError(f"duplicate mode id {mode_id!r}")
        try:
            dialect = Dialect(entry.get("dialect", Dialect.HTML.value))
        except ValueError:
            raise ValueError(f"mode {mode_id!r} has unknown dialect {entry.get('dialect')!r}") from None
        modes[mode_id] = ModeDescriptor(
            id=mode_id,
            name=str(entry.get("name") or mode_id),
            welcome=str(entry.get("welcome") or ""),
            prompt=str(entry.get("prompt") or ""),
            dialect=dialect,
        )

    if DEFAULT_MODE_ID not in modes:
        raise ValueError(f"mode catalog must define the default mode {DEFAULT_MODE_ID!r}")
    return modes


def load_modes(path: Union[str, Path]) -> Dict[str, ModeDescriptor]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_modes(json.load(f))
