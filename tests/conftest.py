import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from gptrelay.core.chat import CompletionDispatcher
from gptrelay.core.models import parse_models, model_families
from gptrelay.core.modes import parse_modes
from gptrelay.core.router import CommandRouter
from gptrelay.core.state import StateStore
from gptrelay.core.tokens import TokenAccountant
from gptrelay.memory.repository import InMemoryConversationRepository

MODELS = [
    {"id": "gpt-3.5-turbo", "name": "GPT-3.5", "family": "gpt-3.5-turbo",
     "input_price": 0.5, "output_price": 1.5},
    {"id": "gpt-4", "name": "GPT-4", "family": "gpt-4", "input_price": 30, "output_price": 60},
    {"id": "legacy", "name": "Legacy", "family": "gpt-3.5-turbo-0301"},
]

MODES = [
    {"id": "assistant", "name": "Assistant", "welcome": "Assistant here.",
     "prompt": "You are helpful.", "dialect": "html"},
    {"id": "strict", "name": "Strict", "welcome": "", "prompt": "", "dialect": "markdown_v2"},
]


class WordEncoding:
    """Whitespace tokenizer: one token per word."""

    def encode(self, text, disallowed_special="all"):
        return text.split()


class FakeBackend:
    def __init__(self, reply="Hello", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def create_chat_completion(self, model, messages):
        self.calls.append((model, messages))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def models():
    return parse_models(MODELS)


@pytest.fixture
def modes():
    return parse_modes(MODES)


@pytest.fixture
def accountant(models):
    return TokenAccountant(model_families(models), encoding_for=lambda model: WordEncoding())


@pytest.fixture
def repo():
    return InMemoryConversationRepository()


@pytest.fixture
def store(repo, models, modes):
    return StateStore(repo, models, modes)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def dispatcher(store, backend, accountant, models, modes, repo):
    return CompletionDispatcher(store, backend, accountant, models, modes, history=repo)


@pytest.fixture
def router(store, dispatcher, models, modes):
    return CommandRouter(store, dispatcher, models, modes)
