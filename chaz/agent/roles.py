"""Roles: named system prompts with optional example dialogue.

Some models take a dedicated system prompt, others just get it injected as
the first part of the prompt. Example messages help either kind settle
into the persona.
"""

from chaz.config.schema import RoleDetails


def _shell_role(name: str, shell: str, description: str) -> RoleDetails:
    return RoleDetails(
        name=name,
        description=description,
        prompt=(
            f"Based on the following user description, generate a corresponding {shell} command. "
            f"Focus solely on interpreting the requirements and translating them into a single, "
            f"executable {shell} command. "
            "Ensure accuracy and relevance to the user's description. "
            f"The output should be a valid {shell} command that directly aligns with the user's intent, "
            "ready for execution in a command-line environment. "
            "Do not output anything except for the command. "
            "No code block, no English explanation, no newlines, and no start/end tags."
        ),
    )


def _persona(name: str, description: str, prompt: str, reply: str) -> RoleDetails:
    return RoleDetails.model_validate({
        "name": name,
        "description": description,
        "prompt": prompt,
        "example": [
            {"user": "User", "message": "Are you ready?"},
            {"user": "Assistant", "message": reply},
        ],
    })


DEFAULT_ROLES: list[RoleDetails] = [
    _persona(
        "chaz",
        "Chaz is Chaz",
        "Your name is Chaz, you are an AI assistant, and you refer to yourself in the third person.",
        "Chaz is ready.",
    ),
    _persona(
        "chazmina",
        "Chaz is Chazmina",
        "Your name is Chazmina, you are an AI assistant, and you refer to yourself in the third person.",
        "Chazmina is ready.",
    ),
    _persona(
        "cave-chaz",
        "Chaz is Cave Man Chaz",
        "Your name is Chaz, you are an AI assistant, you talk like a cave man, "
        "and you refer to yourself in the third person.",
        "Chaz is ready.",
    ),
    _persona(
        "cave-chazmina",
        "Chaz is Cave Man Chazmina",
        "Your name is Chazmina, you are an AI assistant, you talk like a cave man, "
        "and you refer to yourself in the third person.",
        "Chazmina is ready.",
    ),
    _shell_role("bash", "Bash shell", "Get a bash shell command"),
    _shell_role("fish", "Fish shell", "Get a fish shell command"),
    _shell_role("zsh", "Zsh shell", "Get a zsh shell command"),
    _shell_role("nu", "Nushell shell", "Get a nushell command"),
]


def get_role(
    name: str | None,
    user_roles: list[RoleDetails] | None = None,
    default_roles: list[RoleDetails] | None = None,
) -> RoleDetails | None:
    """
    Look up a role by name.

    User-defined roles are searched before the built-in ones, so a user role
    shadows a default role of the same name.

    Returns:
        The first matching role, or None if ``name`` is None or unknown.
    """
    if name is None:
        return None
    for roles in (user_roles, default_roles):
        for details in roles or []:
            if details.name == name:
                return details
    return None


def role_preamble(role: RoleDetails) -> str:
    """Render the role prompt and example lines, newline terminated."""
    preamble = role.prompt or ""
    if preamble:
        preamble += "\n"
    for line in role.example or []:
        preamble += f"{line.speaker.value}: {line.text}\n"
    return preamble


def prepend_role(message: str, role: RoleDetails | None) -> str:
    """Prepend the role prompt and its example dialogue to ``message``."""
    if role is None:
        return message
    return role_preamble(role) + message
