"""Exceptions raised by the placeholder engine.

Resolution-time problems (unknown placeholders, context mismatches,
failing callbacks) never escape `replace`; they are logged and the marker
falls back. Registration-time problems surface to the caller.
"""


class PlaceholderError(Exception):
    """Base class for placeholder engine errors."""


class AlreadyRegisteredError(PlaceholderError):
    """A placeholder with the same namespace and token already exists."""

    def __init__(self, namespace: str, token: str):
        self.namespace = namespace
        self.token = token
        super().__init__(f"Placeholder '{namespace}:{token}' already registered")


class CallbackSignatureError(PlaceholderError):
    """An exported callback cannot accept (token, param[, target])."""


class CallbackError(PlaceholderError):
    """A callback raised, returned a non-string, or could not be found."""

    def __init__(self, message: str, callback: str = ""):
        self.callback = callback
        super().__init__(message)


class CallbackTimeoutError(CallbackError):
    """A callback did not finish within the configured timeout."""


class ConfigError(PlaceholderError):
    """Engine settings could not be loaded or validated."""
