# gptrelay/core/errors.py

from typing import Optional


class RelayError(Exception):
    """Base class for every error raised by the relay core."""


class InvalidModel(RelayError):
    def __init__(self, model_id: str) -> None:
        super().__init__(f"unknown model {model_id!r}")
        self.model_id = model_id


class InvalidMode(RelayError):
    def __init__(self, mode_id: str) -> None:
        super().__init__(f"unknown mode {mode_id!r}")
        self.mode_id = mode_id


class UnknownModelFamily(RelayError):
    """Raised by the token accountant when no rule set matches a model."""


class ConversationNotFound(RelayError):
    def __init__(self, key: int) -> None:
        super().__init__(f"chat {key} not found")
        self.key = key


class PersistenceError(RelayError):
    """Wraps failures reported by the storage backend."""


# ---------------------------------------------------------------------------
# Completion backend
# ---------------------------------------------------------------------------

class BackendError(RelayError):
    """Any failure of a single completion call. Never retried."""


class BackendTransportError(BackendError):
    """Connection error, timeout, or anything below the HTTP layer."""


class BackendMalformedResponse(BackendTransportError):
    """The backend answered, but not with the JSON shape we understand."""


class BackendQuotaExceeded(BackendError):
    """HTTP 429."""


class BackendStructuredError(BackendError):
    """The response body carried a non-empty ``error.message``."""

    def __init__(
        self,
        message: str,
        type: Optional[str] = None,
        param: Optional[str] = None,
        code: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.type = type
        self.param = param
        self.code = code
        self.status = status


class BackendEmptyResponse(BackendError):
    """No choices and no error."""
