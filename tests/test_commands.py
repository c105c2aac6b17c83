"""Tests for the in-band command syntax."""

from chaz.agent.commands import is_command, parse_command


class TestIsCommand:
    def test_marker_starts_command(self):
        assert is_command("!chaz help")
        assert is_command("!model gpt-4o")

    def test_leading_whitespace_is_ignored(self):
        assert is_command("   !chaz help")

    def test_doubled_marker_is_literal(self):
        assert not is_command("!!chaz help")
        assert not is_command("  !!important")

    def test_plain_text(self):
        assert not is_command("hello !chaz")
        assert not is_command("")


class TestParseCommand:
    def test_not_a_command(self):
        assert parse_command("hello there", "chaz") is None
        assert parse_command("!!model gpt-4o", "chaz") is None

    def test_addressed_command(self):
        command = parse_command("!chaz model gpt-4o", "chaz")

        assert command is not None
        assert command.addressed
        assert command.name == "model"
        assert command.args == ["gpt-4o"]
        assert command.remainder == "model gpt-4o"
        assert command.is_reserved

    def test_short_form_is_unaddressed(self):
        command = parse_command("!clear", "chaz")

        assert command is not None
        assert not command.addressed
        assert command.name == "clear"
        assert command.is_reserved

    def test_name_is_lowercased(self):
        command = parse_command("!chaz MODEL x", "chaz")

        assert command.name == "model"
        assert command.args == ["x"]
        assert command.is_reserved

    def test_bot_name_must_be_a_whole_word(self):
        command = parse_command("!chazzy hello", "chaz")

        assert not command.addressed
        assert command.name == "chazzy"
        assert command.args == ["hello"]

    def test_bare_prefix(self):
        command = parse_command("!chaz", "chaz")

        assert command.addressed
        assert command.name == ""
        assert command.args == []

    def test_bare_marker(self):
        command = parse_command("!", "chaz")

        assert not command.addressed
        assert command.name == ""

    def test_remainder_keeps_inner_spacing(self):
        command = parse_command("!chaz  what is   up ", "chaz")

        assert command.name == "what"
        assert command.remainder == "what is   up"
        assert not command.is_reserved

    def test_custom_bot_name(self):
        command = parse_command("!chazmina list", "chazmina")

        assert command.addressed
        assert command.name == "list"
