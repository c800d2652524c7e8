"""Tests for the webhook app in :mod:`gptrelay.api.server`."""

import logging

import pytest
from fastapi.testclient import TestClient

from gptrelay.api.server import SECRET_HEADER, create_app, process_update
from gptrelay.clients.telegram_client import TelegramError


class RecordingTelegram:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send_message(self, message):
        if self.fail:
            raise TelegramError("sendMessage rejected")
        self.sent.append(message)
        return {}


def _update(text, chat_id=42, update_id=1):
    return {"update_id": update_id, "message": {"chat": {"id": chat_id}, "text": text}}


@pytest.fixture
def telegram():
    return RecordingTelegram()


def test_webhook_routes_update(router, telegram):
    client = TestClient(create_app(router, telegram))
    resp = client.post("/", json=_update("Hi"))
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "delivered": 1}
    assert telegram.sent[0].chat_id == 42
    assert telegram.sent[0].text == "Hello"


def test_webhook_rejects_bad_secret(router, telegram):
    client = TestClient(create_app(router, telegram, secret_token="s3cret"))
    assert client.post("/", json=_update("Hi"), headers={SECRET_HEADER: "nope"}).status_code == 401
    assert client.post("/", json=_update("Hi"), headers={SECRET_HEADER: "s3cret"}).status_code == 200
    assert len(telegram.sent) == 1


def test_health(router, telegram):
    client = TestClient(create_app(router, telegram))
    assert client.get("/health").json() == {"status": "ok"}


def test_non_text_update_is_acknowledged(router, telegram, backend):
    client = TestClient(create_app(router, telegram))
    resp = client.post("/", json={"update_id": 3, "message": {"chat": {"id": 1}, "sticker": {}}})
    assert resp.json() == {"ok": True, "delivered": 0}
    assert backend.calls == []


def test_send_failure_is_logged_not_raised(router):
    assert process_update(router, RecordingTelegram(fail=True), _update("Hi")) == 0


def test_update_without_id_is_rejected(router, telegram):
    client = TestClient(create_app(router, telegram))
    assert client.post("/", json={"message": {"chat": {"id": 1}, "text": "Hi"}}).status_code == 422
    assert telegram.sent == []


def test_processing_failure_is_acknowledged(router, telegram, backend):
    backend.error = RuntimeError("unexpected")
    client = TestClient(create_app(router, telegram))
    resp = client.post("/", json=_update("Hi"))
    assert resp.status_code == 200
    assert resp.json() == {"ok": False, "delivered": 0}


def test_send_failure_log_names_dialect(router, caplog):
    with caplog.at_level(logging.ERROR):
        process_update(router, RecordingTelegram(fail=True), _update("Hi"))
    assert "dialect=html" in caplog.text
    assert "sendMessage rejected" in caplog.text
