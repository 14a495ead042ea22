"""Tests for Telegram command definitions."""

from cargo_relay.telegram_commands import BotCommand, match_command, telegram_commands


def test_telegram_commands_include_intake() -> None:
    commands = telegram_commands()

    assert {
        "command": "receive_start",
        "description": "Start an intake: CODE [note]",
    } in commands
    assert len(commands) == len(list(BotCommand))


def test_match_command_strips_bot_name_and_splits_args() -> None:
    assert match_command("/receive_start@cargo_bot C001 inv-1") == (
        BotCommand.RECEIVE_START,
        ["C001", "inv-1"],
    )
    assert match_command("/HELP") == (BotCommand.HELP, [])
    assert match_command("/unknown") is None
    assert match_command("C001 1 2 3") is None
    assert match_command(None) is None
    assert BotCommand.CANCEL.slash == "/cancel"
