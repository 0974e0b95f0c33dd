"""
Custom exceptions for the settings sync package.
"""


class SettingsSyncError(Exception):
    """Base exception for all settings sync errors."""


class GatewayError(SettingsSyncError):
    """
    Error talking to the remote settings server.

    Raised when:
    - The server stays unreachable after all retries
    - The server answers with an ``error`` field
    - The response body is not valid JSON
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidTokenError(GatewayError):
    """The server kept rejecting the token after re-authenticating."""


class AuthError(SettingsSyncError):
    """Error while obtaining a token from the authentication flow."""


class AuthWindowClosedError(AuthError):
    """The user closed the authentication window before deciding.

    Expected user behaviour, so callers keep it out of error logs.
    """


class AuthDeniedError(AuthError):
    """The user (or the provider) denied access."""

    def __init__(self, reason: str):
        super().__init__(f"Authentication denied: {reason}")
        self.reason = reason


class ClassificationError(SettingsSyncError):
    """
    The remote snapshot cannot be turned into change records.

    Raised when:
    - An expected file (``packages.json``) is missing
    - A JSON file in the snapshot does not parse
    """


class BackupRejectedError(SettingsSyncError):
    """The server answered a backup with ``success: false``."""
