# gptrelay/clients/openai_client.py
#
# Single integration layer for the chat-completion backend.
# One request per call: no retries, no backoff.

import random
import time
from typing import Any, Dict, List, Optional

import requests

from gptrelay.core.errors import (
    BackendEmptyResponse,
    BackendMalformedResponse,
    BackendQuotaExceeded,
    BackendStructuredError,
    BackendTransportError,
)
from gptrelay.utils.logging import get_logger

logger = get_logger(__name__)

QUOTA_STATUS = 429

# ---------------------------------------------------------------------------
# Base-url normalization
# ---------------------------------------------------------------------------

def _strip_outer_quotes(s: str) -> str:
    """
    Users sometimes put SERVER_URL="https://..." including quotes.
    This removes a single pair of matching outer quotes.
    """
    s2 = (s or "").strip()
    if len(s2) >= 2 and ((s2[0] == s2[-1]) and s2[0] in ("'", '"')):
        return s2[1:-1].strip()
    return s2


def normalize_api_base(raw: Optional[str]) -> str:
    """
    Ensures the api base ends with /v1.
    """
    base = _strip_outer_quotes((raw or "https://api.openai.com").strip())

    if not (base.startswith("http://") or base.startswith("https://")):
        raise RuntimeError(f"SERVER_URL is invalid (missing scheme): {base!r}")

    while base.endswith("/"):
        base = base[:-1]

    # Full endpoint like .../v1/chat/completions: trim to /v1
    if "/v1/" in base:
        return base.split("/v1/")[0] + "/v1"

    if base.endswith("/v1"):
        return base

    return base + "/v1"


def _join_api(base_v1: str, path_no_leading_slash: str) -> str:
    b = (base_v1 or "").rstrip("/")
    p = (path_no_leading_slash or "").lstrip("/")
    return f"{b}/{p}"

# ---------------------------------------------------------------------------
# Log helpers
# ---------------------------------------------------------------------------

def _mk_req_id(prefix: str = "req") -> str:
    return f"{prefix}_{int(time.time()*1000)}_{random.randint(1000, 9999)}"


def _safe_host_from_url(url: str) -> str:
    u = (url or "").strip()
    u = u.replace("https://", "").replace("http://", "")
    return u.split("/")[0] or "unknown-host"


def _snippet(text: str, limit: int = 240) -> str:
    text = text or ""
    return text[:limit] + ("..." if len(text) > limit else "")

# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class CompletionClient:
    """
    POST <base>/v1/chat/completions with {model, messages}.

    create_chat_completion() returns the first choice's content or raises
    one of the Backend* errors from gptrelay.core.errors.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise RuntimeError("OPENAI_API_KEY is not set")
        self._api_key = api_key.strip()
        self.api_base = normalize_api_base(base_url)
        self.url = _join_api(self.api_base, "chat/completions")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "gptrelay (requests)"})
        logger.info("Completion endpoint resolved to: %s", self.url)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def create_chat_completion(self, model: str, messages: List[Dict[str, str]]) -> str:
        req_id = _mk_req_id("chat")
        host = _safe_host_from_url(self.url)
        payload: Dict[str, Any] = {"model": model, "messages": messages}

        logger.info("[chat] req_id=%s start model=%s host=%s msg_count=%d",
                    req_id, model, host, len(messages))

        t0 = time.monotonic()
        try:
            resp = self._session.post(self.url, headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            dt_ms = int((time.monotonic() - t0) * 1000)
            logger.error("[chat] req_id=%s transport failure latency_ms=%d host=%s err=%s",
                         req_id, dt_ms, host, e)
            raise BackendTransportError(str(e)) from e

        dt_ms = int((time.monotonic() - t0) * 1000)
        logger.info("[chat] req_id=%s status=%d latency_ms=%d", req_id, resp.status_code, dt_ms)

        if resp.status_code == QUOTA_STATUS:
            logger.warning("[chat] req_id=%s quota exceeded body=%r", req_id, _snippet(resp.text, 400))
            raise BackendQuotaExceeded(f"HTTP {QUOTA_STATUS} from {host}")

        try:
            body = resp.json()
        except ValueError as e:
            logger.error("[chat] req_id=%s non-JSON response status=%d body=%r",
                         req_id, resp.status_code, _snippet(resp.text, 400))
            raise BackendMalformedResponse(f"non-JSON response (HTTP {resp.status_code})") from e

        if not isinstance(body, dict):
            raise BackendMalformedResponse(f"unexpected JSON payload type {type(body).__name__}")

        error = body.get("error") or {}
        if isinstance(error, dict) and error.get("message"):
            logger.error("[chat] req_id=%s backend error status=%d type=%s code=%s message=%s",
                         req_id, resp.status_code, error.get("type"), error.get("code"), error.get("message"))
            raise BackendStructuredError(
                message=str(error.get("message")),
                type=error.get("type"),
                param=error.get("param"),
                code=error.get("code"),
                status=resp.status_code,
            )

        choices = body.get("choices") or []
        if not choices:
            logger.warning("[chat] req_id=%s empty choice list status=%d", req_id, resp.status_code)
            raise BackendEmptyResponse(f"no choices in response (HTTP {resp.status_code})")

        try:
            content = choices[0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise BackendMalformedResponse(f"unexpected choice shape: {choices[0]!r}") from e

        content = content or ""
        logger.info("[chat] req_id=%s OK latency_ms=%d model=%s reply=%r",
                    req_id, dt_ms, model, _snippet(content))
        return content
