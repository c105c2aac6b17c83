"""Error taxonomy shared by the context builder, backends and dispatcher.

Every failure that should reach the room as a reply derives from
:class:`ChazError`; ``str(err)`` is the text shown to the user.
"""


class ChazError(Exception):
    """Base class for errors reported back to the room."""


class TransportError(ChazError):
    """History pagination or backend I/O failed."""


class DecodeError(ChazError):
    """Backend output could not be decoded."""


class EmptyResponseError(ChazError):
    """The backend call succeeded but produced no output."""


class ConfigurationError(ChazError):
    """A backend is missing required settings, or none are configured."""


class ModelValidationError(ChazError):
    """The requested model name cannot be routed to a backend."""


class PermissionDeniedError(ChazError):
    """The server refused a room state change."""
