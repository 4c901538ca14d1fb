"""Dexcom Share web service client.

Session-managed async access to one Share account: authentication, reading
and writing glucose values, and receiver registration.
"""

from share_bridge.share.client import ShareClient, is_session_expired
from share_bridge.share.errors import (
    AuthenticationError,
    InvalidCredentials,
    LoginFailed,
    RegistrationFailed,
    ServerError,
    ShareError,
    TransportError,
)

__all__ = [
    "AuthenticationError",
    "InvalidCredentials",
    "LoginFailed",
    "RegistrationFailed",
    "ServerError",
    "ShareClient",
    "ShareError",
    "TransportError",
    "is_session_expired",
]
