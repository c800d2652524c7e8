"""Tests for :mod:`gptrelay.core.router`."""

from gptrelay.core import commands as cmd
from gptrelay.core.channels import InboundMessage
from gptrelay.core.chat import QUOTA_EXCEEDED_MESSAGE
from gptrelay.core.errors import BackendQuotaExceeded
from gptrelay.core.formatting import Dialect
from gptrelay.core.router import Intent


def _send(router, text, chat_id=500, reply_to=None):
    return router.handle(InboundMessage(chat_id=chat_id, text=text, reply_to_text=reply_to))


def test_start_shows_main_menu(router):
    [out] = _send(router, "/start")
    assert out.text.startswith("👋 Welcome!")
    assert [cmd.CHATS] in out.keyboard


def test_create_chat_flow(router, store):
    [prompt] = _send(router, cmd.CREATE_CHAT)
    assert prompt.text == cmd.CHAT_NAME_PROMPT
    assert prompt.force_reply
    assert router.intent(500) == Intent.AWAITING_CHAT_NAME

    [done] = _send(router, "Project X", reply_to=cmd.CHAT_NAME_PROMPT)

    assert done.text == "New chat created with ID: 500 and name: Project X"
    assert router.intent(500) == Intent.IDLE
    assert [(c.key, c.name) for c in store.list_conversations()] == [(500, "Project X")]


def test_awaiting_name_without_reply_falls_through(router, backend, store):
    _send(router, cmd.CREATE_CHAT)
    [out] = _send(router, "Project X")
    assert out.text == "Hello"
    assert backend.calls
    assert router.intent(500) == Intent.IDLE
    assert store.list_conversations() == []


def test_delete_chat_removes_history_and_name(router, store, repo):
    _send(router, cmd.CREATE_CHAT)
    _send(router, "Project X", reply_to=cmd.CHAT_NAME_PROMPT)
    _send(router, "Model: gpt-4")
    _send(router, "hello there")
    assert repo.list_history(500)

    [out] = _send(router, "Delete Chat ID: 500 (Project X)")

    assert out.text == "Chat 500 deleted successfully."
    assert repo.list_history(500) == []
    assert store.list_conversations() == []
    assert store.get_state(500).active_model == "gpt-3.5-turbo"


def test_delete_unknown_chat_reports_failure(router):
    [out] = _send(router, "Delete Chat ID: 31337")
    assert out.text.startswith("Failed to delete chat:")


def test_set_model_rejection_is_verbatim(router, store):
    [out] = _send(router, "Model: not-a-real-model")
    assert out.text == "Failed to set model: unknown model 'not-a-real-model'"
    assert store.get_state(500).active_model == "gpt-3.5-turbo"


def test_set_model_and_mode(router, store):
    [out] = _send(router, "Model: gpt-4")
    assert out.text == "Model set to gpt-4"
    [out] = _send(router, "Mode: assistant")
    assert out.text == "Assistant here."
    [out] = _send(router, "Mode: strict")
    assert out.text == "Mode set to Strict"
    assert store.get_state(500).active_mode == "strict"


def test_switch_chat_redirects_history(router, repo):
    [out] = _send(router, "Chat ID: 77 (Other)")
    assert out.text == "Switched to chat 77"
    _send(router, "note this")
    assert [e.message for e in repo.list_history(77)] == ["note this"]


def test_bad_switch_is_dropped_silently(router, store):
    assert _send(router, "Chat ID: abc") == []
    assert store.get_state(500).active_target is None


def test_status_reports_current_choices(router):
    _send(router, "Model: gpt-4")
    [out] = _send(router, cmd.STATUS)
    assert "Current model: gpt-4" in out.text
    assert "Current mode: Assistant" in out.text
    assert "Active chat: 500" in out.text


def test_chat_list_buttons(router):
    [empty] = _send(router, cmd.CHATS)
    assert empty.text == "📭 No chats found."
    _send(router, cmd.CREATE_CHAT)
    _send(router, "Project X", reply_to=cmd.CHAT_NAME_PROMPT)
    [listing] = _send(router, cmd.CHATS)
    assert listing.text == "💬 Active chats:"
    assert ["Chat ID: 500 (Project X)"] in listing.keyboard


def test_settings_lists_models_and_modes(router):
    [out] = _send(router, cmd.SETTINGS)
    labels = [label for row in out.keyboard for label in row]
    assert "Model: gpt-4" in labels
    assert "Mode: strict" in labels
    assert labels[-1] == cmd.BACK


def test_conversation_reply_uses_dispatcher_dialect(router, backend):
    backend.error = BackendQuotaExceeded("HTTP 429")
    [out] = _send(router, "Hi")
    assert out.text == QUOTA_EXCEEDED_MESSAGE
    assert out.dialect == Dialect.PLAIN


def test_reply_to_prompt_while_idle_is_conversation(router, backend, store):
    [out] = _send(router, "Project X", chat_id=7, reply_to=cmd.CHAT_NAME_PROMPT)

    assert out.text == "Hello"
    assert backend.calls[-1][1][-1] == {"role": "user", "content": "Project X"}
    assert store.list_conversations() == []


def test_reply_to_prompt_while_idle_still_routes_buttons(router, store):
    [out] = _send(router, "Model: gpt-4", reply_to=cmd.CHAT_NAME_PROMPT)
    assert out.text == "Model set to gpt-4"
    assert store.list_conversations() == []


def test_special_token_text_gets_a_reply(router, backend):
    [out] = _send(router, "what does <|endoftext|> mean?")
    assert out.text == "Hello"
    assert backend.calls
