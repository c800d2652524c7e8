"""Tests for :mod:`gptrelay.core.commands`."""

from gptrelay.core import commands as cmd


def test_buttons_and_slash_aliases():
    assert cmd.parse_command(cmd.START) == cmd.Start()
    assert cmd.parse_command("/start") == cmd.Start()
    assert cmd.parse_command(cmd.BACK) == cmd.Start()
    assert cmd.parse_command(cmd.STATUS) == cmd.Status()
    assert cmd.parse_command(cmd.CHATS) == cmd.ListChats()
    assert cmd.parse_command(cmd.CREATE_CHAT) == cmd.CreateChat()
    assert cmd.parse_command(cmd.DELETE_CHAT) == cmd.DeleteChatMenu()


def test_prefixed_buttons():
    assert cmd.parse_command("Model: gpt-4") == cmd.SetModel("gpt-4")
    assert cmd.parse_command("Mode: coder") == cmd.SetMode("coder")
    assert cmd.parse_command("Chat ID: 12") == cmd.SwitchChat(12)
    assert cmd.parse_command("Chat ID: -100123 (Team)") == cmd.SwitchChat(-100123)
    assert cmd.parse_command("Delete Chat ID: 12 (Project X)") == cmd.DeleteChat(12)


def test_unparseable_chat_id_is_ignored():
    assert isinstance(cmd.parse_command("Chat ID: twelve"), cmd.Ignore)
    assert isinstance(cmd.parse_command("Delete Chat ID: "), cmd.Ignore)


def test_reply_to_prompt_wins_over_prefixes():
    parsed = cmd.parse_command("Model: gpt-4", reply_to_text=cmd.CHAT_NAME_PROMPT)
    assert parsed == cmd.NameChat("Model: gpt-4")


def test_reply_to_other_message_is_conversation():
    assert cmd.parse_command("Project X", reply_to_text="something else") == cmd.Converse("Project X")


def test_plain_text_is_conversation():
    assert cmd.parse_command("What is 2+2?") == cmd.Converse("What is 2+2?")
    assert isinstance(cmd.parse_command("   "), cmd.Ignore)
