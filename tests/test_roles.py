"""Tests for role resolution and rendering."""

from chaz.agent.roles import DEFAULT_ROLES, get_role, prepend_role, role_preamble
from chaz.config.schema import ExampleSpeaker, RoleDetails, RoleExample


class TestGetRole:
    def test_none_name(self):
        assert get_role(None, [], DEFAULT_ROLES) is None

    def test_builtin_role(self):
        role = get_role("chaz", None, DEFAULT_ROLES)

        assert role is not None
        assert role.name == "chaz"
        assert "Chaz" in role.prompt

    def test_user_role_shadows_builtin(self):
        custom = RoleDetails(name="chaz", prompt="You are a pirate.")

        role = get_role("chaz", [custom], DEFAULT_ROLES)

        assert role is custom

    def test_unknown_role(self):
        assert get_role("nobody", [], DEFAULT_ROLES) is None

    def test_all_builtin_names(self):
        names = {role.name for role in DEFAULT_ROLES}

        assert names == {"chaz", "chazmina", "cave-chaz", "cave-chazmina", "bash", "fish", "zsh", "nu"}


class TestRendering:
    def test_preamble_with_examples(self):
        role = get_role("chaz", None, DEFAULT_ROLES)

        preamble = role_preamble(role)

        assert preamble == (
            f"{role.prompt}\n"
            "USER: Are you ready?\n"
            "ASSISTANT: Chaz is ready.\n"
        )

    def test_preamble_without_examples(self):
        role = RoleDetails(name="plain", prompt="Be brief.")

        assert role_preamble(role) == "Be brief.\n"

    def test_prepend_without_role(self):
        assert prepend_role("USER: hi\n", None) == "USER: hi\n"

    def test_prepend_with_role(self):
        role = RoleDetails(name="plain", prompt="Be brief.")

        assert prepend_role("USER: hi\n", role) == "Be brief.\nUSER: hi\n"

    def test_example_speaker_any_case(self):
        example = RoleExample.model_validate({"user": "assistant", "message": "ok"})

        assert example.speaker is ExampleSpeaker.ASSISTANT
        assert example.text == "ok"
