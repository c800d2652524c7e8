# gptrelay/core/models.py

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Union

from gptrelay.core.tokens import TOKEN_RULES

DEFAULT_MODEL_ID = "gpt-3.5-turbo"


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    name: str
    description: str
    family: str
    input_price: float = 0.0     # USD per 1000 input tokens
    output_price: float = 0.0    # USD per 1000 output tokens
    scores: Dict[str, int] = field(default_factory=dict)

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens * self.input_price + output_tokens * self.output_price) / 1000.0


def parse_models(raw: list) -> Dict[str, ModelDescriptor]:
    """
    Build the model catalog from decoded JSON. Raises ValueError on bad
    entries, including families without token rules. The default model must
    be present.
    """
    if not isinstance(raw, list):
        raise ValueError("model catalog must be a JSON list")

    models: Dict[str, ModelDescriptor] = {}
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict) or not entry.get("id"):
            raise ValueError(f"invalid model entry at index {i}: {entry!r}")
        model_id = str(entry["id"]).strip()
        if model_id in models:
            raise ValueError(f"duplicate model id {model_id!r}")
        family = str(entry.get("family") or model_id)
        if family not in TOKEN_RULES:
            raise ValueError(f"model {model_id!r} has unknown family {family!r}")
        try:
            input_price = float(entry.get("input_price", 0.0))
            output_price = float(entry.get("output_price", 0.0))
        except (TypeError, ValueError):
            raise ValueError(f"model {model_id!r} has a non-numeric price") from None
        models[model_id] = ModelDescriptor(
            id=model_id,
            name=str(entry.get("name") or model_id),
            description=str(entry.get("description") or ""),
            family=family,
            input_price=input_price,
            output_price=output_price,
            scores=dict(entry.get("scores") or {}),
        )

    if DEFAULT_MODEL_ID not in models:
        raise ValueError(f"model catalog must define the default model {DEFAULT_MODEL_ID!r}")
    return models


def load_models(path: Union[str, Path]) -> Dict[str, ModelDescriptor]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_models(json.load(f))


def model_families(models: Dict[str, ModelDescriptor]) -> Dict[str, str]:
    return {model_id: m.family for model_id, m in models.items()}
