"""Async client for one Dexcom Share account.

The Share web service is session based: an account ID is obtained once per
process from the account name and password, and a session ID is opened from
the account ID. Data operations carry the session ID in the query string.
Sessions expire on the server without notice, so read and write requests
re-authenticate and retry when the remote reports an unknown or timed out
session.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx

from share_bridge.models import AccountCredentials, GlucoseReading
from share_bridge.share.constants import (
    APPLICATION_ID,
    AUTHENTICATE_ENDPOINT,
    DEFAULT_HEADERS,
    DEFAULT_TIMEOUT,
    LOGIN_ENDPOINT,
    MAX_SESSION_ATTEMPTS,
    NULL_UUID,
    READ_ENDPOINT,
    REGISTER_ENDPOINT,
    SESSION_EXPIRED_MESSAGES,
    SESSION_NOT_FOUND_CODE,
    WRITE_ENDPOINT,
)
from share_bridge.share.errors import (
    InvalidCredentials,
    LoginFailed,
    RegistrationFailed,
    ServerError,
    TransportError,
)

logger = logging.getLogger(__name__)


def is_session_expired(error: ServerError) -> bool:
    """Check whether a server error means the session is no longer valid."""
    if error.code == SESSION_NOT_FOUND_CODE:
        return True
    return any(marker in error.message for marker in SESSION_EXPIRED_MESSAGES)


def local_utc_offset_minutes() -> int:
    """Local UTC offset in minutes east of UTC."""
    offset = datetime.now().astimezone().utcoffset()
    return int(offset.total_seconds() // 60) if offset else 0


class ShareClient:
    """Session-managed client for a single Dexcom Share account.

    Features:
    - Two-step authentication (account ID is cached, session is re-opened)
    - Transparent re-authentication on session expiry
    - Batched glucose value upload
    - Monitored receiver registration
    """

    def __init__(
        self,
        credentials: AccountCredentials,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            credentials: Account to authenticate as
            timeout: Request timeout in seconds
            http_client: Optional pre-configured httpx client (for testing)
        """
        self.credentials = credentials
        self.base_url = credentials.base_url
        self.account_id: str | None = None
        self.session_id: str | None = None

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(headers=DEFAULT_HEADERS, timeout=timeout)

    @property
    def region(self) -> str:
        return self.credentials.region.value

    @property
    def has_session(self) -> bool:
        return self.session_id is not None

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> ShareClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _post(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        name = endpoint.rsplit("/", 1)[-1]
        logger.debug(f"POST {name} ({self.region})")

        try:
            return await self._http.post(url, params=params, json=payload, headers=DEFAULT_HEADERS)
        except httpx.RequestError as e:
            raise TransportError(f"{name} request failed: {e}") from e

    @staticmethod
    def _parse_json(response: httpx.Response) -> Any:
        """Decode a JSON body, returning None when it is not JSON."""
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _parse_token(response: httpx.Response) -> str:
        return response.text.strip().replace('"', "")

    def _server_error(self, response: httpx.Response, context: str) -> ServerError:
        body = self._parse_json(response)
        code = None
        message = None

        if isinstance(body, dict):
            code = body.get("Code")
            message = body.get("Message")

        if not message:
            message = f"{context} failed: {response.status_code}"

        return ServerError(str(message), code=code, status=response.status_code)

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    async def authenticate(self) -> str:
        """Open a session, authenticating the account first if needed.

        Returns:
            The new session ID

        Raises:
            InvalidCredentials: If the account name or password is rejected
            LoginFailed: If no session could be opened for the account
            ServerError: If the remote answers with an error status
            TransportError: If the remote cannot be reached
        """
        if self.account_id is None:
            response = await self._post(
                AUTHENTICATE_ENDPOINT,
                payload={
                    "accountName": self.credentials.username,
                    "password": self.credentials.password,
                    "applicationId": APPLICATION_ID,
                },
            )
            if not response.is_success:
                raise self._server_error(response, "Account authentication")

            account_id = self._parse_token(response)
            if not account_id or account_id == NULL_UUID:
                raise InvalidCredentials()

            self.account_id = account_id
            logger.debug(f"Authenticated {self.region.upper()} account")

        response = await self._post(
            LOGIN_ENDPOINT,
            payload={
                "accountId": self.account_id,
                "password": self.credentials.password,
                "applicationId": APPLICATION_ID,
            },
        )
        if not response.is_success:
            raise self._server_error(response, "Session login")

        session_id = self._parse_token(response)
        if not session_id or session_id == NULL_UUID:
            raise LoginFailed()

        self.session_id = session_id
        logger.info(f"Opened Share session ({self.region.upper()})")
        return session_id

    def invalidate_session(self) -> None:
        """Forget the session and account IDs so the next call re-authenticates."""
        self.session_id = None
        self.account_id = None

    async def _ensure_session(self) -> str:
        if not self.has_session:
            return await self.authenticate()
        return self.session_id

    async def _call_with_session(
        self,
        context: str,
        request: Callable[[str], Awaitable[httpx.Response]],
    ) -> httpx.Response:
        """Run a session-bound request, re-authenticating on session expiry.

        Args:
            context: Operation name used in errors and logs
            request: Sends the request for a given session ID

        Returns:
            The successful response

        Raises:
            ServerError: On a non-expiry error, or when the session is still
                reported expired after MAX_SESSION_ATTEMPTS attempts
        """
        attempt = 1

        while True:
            session_id = await self._ensure_session()
            response = await request(session_id)

            if response.is_success:
                return response

            error = self._server_error(response, context)
            if not is_session_expired(error):
                raise error

            self.invalidate_session()
            if attempt >= MAX_SESSION_ATTEMPTS:
                raise ServerError(
                    f"{context}: session still expired after {MAX_SESSION_ATTEMPTS} attempts",
                    code=error.code,
                    status=error.status,
                )

            logger.warning(
                f"{context}: session expired ({error.message}), "
                f"re-authenticating (attempt {attempt}/{MAX_SESSION_ATTEMPTS})"
            )
            attempt += 1

    # ------------------------------------------------------------------
    # Data operations
    # ------------------------------------------------------------------

    async def read_recent_readings(
        self,
        minutes: int = 1440,
        max_count: int = 288,
    ) -> list[GlucoseReading]:
        """Read the most recent glucose values, newest first.

        Args:
            minutes: Size of the look-back window
            max_count: Maximum number of readings to return

        Returns:
            Readings in the order the remote returned them. A body that is not
            a JSON array yields an empty list.
        """

        def send(session_id: str) -> Awaitable[httpx.Response]:
            return self._post(
                READ_ENDPOINT,
                params={"sessionId": session_id, "minutes": minutes, "maxCount": max_count},
            )

        response = await self._call_with_session("Read readings", send)

        body = self._parse_json(response)
        if not isinstance(body, list):
            logger.debug(f"Read returned no reading list ({self.region.upper()})")
            return []

        readings: list[GlucoseReading] = []
        for entry in body:
            try:
                readings.append(GlucoseReading.from_share(entry))
            except ValueError as e:
                logger.warning(f"Skipping malformed reading: {e}")

        logger.debug(f"Read {len(readings)} readings ({self.region.upper()})")
        return readings

    async def latest_reading(self) -> GlucoseReading | None:
        """Get the most recent single reading, if any."""
        readings = await self.read_recent_readings(minutes=10, max_count=1)
        return readings[0] if readings else None

    async def write_readings(self, serial_number: str, records: list[dict[str, Any]]) -> bool:
        """Upload glucose values in one batch.

        Args:
            serial_number: Receiver serial number the values belong to
            records: Transfer records (Trend, ST, DT, Value)

        Returns:
            True once the remote accepted the batch
        """
        payload = {
            "SN": serial_number,
            "Egvs": records,
            "TA": local_utc_offset_minutes(),
        }

        def send(session_id: str) -> Awaitable[httpx.Response]:
            return self._post(WRITE_ENDPOINT, params={"sessionId": session_id}, payload=payload)

        await self._call_with_session("Write readings", send)
        logger.debug(f"Wrote {len(records)} readings ({self.region.upper()})")
        return True

    async def register_target(self, serial_number: str) -> bool:
        """Set the receiver monitored by this account.

        The remote answers 500 on some repeated registrations that still
        succeed, so that status is accepted.

        Raises:
            RegistrationFailed: On any other non-success status
        """
        session_id = await self._ensure_session()
        response = await self._post(
            REGISTER_ENDPOINT,
            params={"sessionId": session_id, "sn": serial_number},
        )

        if response.status_code == 500:
            logger.debug(f"Receiver registration returned 500, treating {serial_number} as registered")
        elif not response.is_success:
            raise RegistrationFailed(response.status_code)

        return True
