# gptrelay/core/tokens.py
"""
Token accounting for chat-completion requests.

Counts follow the per-family rules the backend applies when it packs a
chat request: every message costs a fixed overhead on top of its content,
a ``name`` field costs an extra (possibly negative) correction, and every
request is primed with a few reply tokens. Output is counted the same way
for a standalone answer string.

These numbers are estimates for logging and cost reporting. Nothing here
truncates or rejects a request.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

import tiktoken

from gptrelay.core.errors import UnknownModelFamily

REPLY_PRIMING_TOKENS = 2
ANSWER_PRIMING_TOKENS = 1
FALLBACK_ENCODING = "cl100k_base"


@dataclass(frozen=True)
class TokenRules:
    tokens_per_message: int
    tokens_per_name: int


TOKEN_RULES: Dict[str, TokenRules] = {
    "gpt-3.5-turbo-0301": TokenRules(tokens_per_message=4, tokens_per_name=-1),
    "gpt-3.5-turbo": TokenRules(tokens_per_message=3, tokens_per_name=1),
    "gpt-4": TokenRules(tokens_per_message=3, tokens_per_name=1),
    "gpt-4o": TokenRules(tokens_per_message=3, tokens_per_name=1),
}


@lru_cache(maxsize=None)
def tiktoken_encoding(model: str):
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding(FALLBACK_ENCODING)


class TokenAccountant:
    """
    ``families`` maps a model id to its family (usually taken from the model
    catalog). ``encoding_for`` returns an object with an ``encode(str)``
    method for a model id; it defaults to tiktoken.
    """

    def __init__(
        self,
        families: Mapping[str, str],
        encoding_for: Optional[Callable[[str], object]] = None,
    ) -> None:
        self._families = dict(families)
        self._encoding_for = encoding_for or tiktoken_encoding

    def rules_for(self, model: str) -> TokenRules:
        family = self._families.get(model)
        if family is None:
            raise UnknownModelFamily(f"no model family configured for {model!r}")
        rules = TOKEN_RULES.get(family)
        if rules is None:
            raise UnknownModelFamily(f"no token rules for model family {family!r}")
        return rules

    def _length(self, model: str, text: str) -> int:
        # User text may contain special-token markers such as <|endoftext|>;
        # count them as ordinary text.
        return len(self._encoding_for(model).encode(text or "", disallowed_special=()))

    def count_tokens(self, messages: Iterable[Mapping[str, str]], model: str) -> Tuple[int, int]:
        """
        Return (input_tokens, output_tokens) for a request. A message list has
        no output of its own, so output_tokens is always 0 here; use
        count_answer_tokens() once the reply is known.
        """
        rules = self.rules_for(model)
        total = 0
        for message in messages:
            total += rules.tokens_per_message
            total += self._length(model, message.get("content", ""))
            name = message.get("name")
            if name:
                total += rules.tokens_per_name
                total += self._length(model, name)
        total += REPLY_PRIMING_TOKENS
        return total, 0

    def count_answer_tokens(self, answer: str, model: str) -> int:
        self.rules_for(model)
        return ANSWER_PRIMING_TOKENS + self._length(model, answer)
