"""
Error taxonomy for AI DJ.

Every network-facing operation converts third-party exceptions into one of
these before they leave the module. The conversation turns them into an
assistant message; the HTTP layer uses status_code.
"""


class RemixError(RuntimeError):
    """Base class for all failures the user can see."""

    status_code = 500

    def __init__(self, message, *, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthError(RemixError):
    """Spotify credential missing or rejected. The user must sign in again."""

    status_code = 401


class TransportError(RemixError):
    """Network failure, timeout or 5xx. Transient; the user may retry."""

    status_code = 502


class MalformedResponseError(TransportError):
    """The catalog answered with a payload we could not validate."""


class ConfigError(RemixError):
    """No API key configured for the generative provider."""

    status_code = 503


class EmptyResponseError(RemixError):
    """The provider answered but there was no text in it."""

    status_code = 502


class ProviderError(RemixError):
    """Any other provider-side failure."""

    status_code = 502
