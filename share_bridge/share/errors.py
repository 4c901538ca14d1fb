"""Errors raised by the Share client."""

from __future__ import annotations


class ShareError(Exception):
    """Base class for Share client failures."""


class AuthenticationError(ShareError):
    """Authenticating against a Share account failed."""


class InvalidCredentials(AuthenticationError):
    """The account name or password was rejected."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class LoginFailed(AuthenticationError):
    """The account was found but no session could be opened."""

    def __init__(self, message: str = "Login failed"):
        super().__init__(message)


class ServerError(ShareError):
    """The remote answered with an error response."""

    def __init__(self, message: str, code: str | None = None, status: int | None = None):
        super().__init__(f"Server error: {message}")
        self.message = message
        self.code = code
        self.status = status


class RegistrationFailed(ShareError):
    """The monitored receiver could not be registered."""

    def __init__(self, status: int):
        super().__init__(f"Failed to register receiver: {status}")
        self.status = status


class TransportError(ShareError):
    """The request never produced an HTTP response (network failure or timeout)."""
