"""Dexcom Share web service constants."""

# Application ID sent with authenticate/login payloads
APPLICATION_ID = "d89443d2-327c-4a6f-89e5-496bbb0317db"

USER_AGENT = "Dexcom Share/3.0.2.11"

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "User-Agent": USER_AGENT,
}

# Returned in place of an account or session ID when the remote rejects a login
NULL_UUID = "00000000-0000-0000-0000-000000000000"

# Endpoints, relative to the regional base URL
AUTHENTICATE_ENDPOINT = "/ShareWebServices/Services/General/AuthenticatePublisherAccount"
LOGIN_ENDPOINT = "/ShareWebServices/Services/General/LoginPublisherAccountById"
READ_ENDPOINT = "/ShareWebServices/Services/Publisher/ReadPublisherLatestGlucoseValues"
WRITE_ENDPOINT = "/ShareWebServices/Services/Publisher/PostReceiverEgvRecords"
REGISTER_ENDPOINT = "/ShareWebServices/Services/Publisher/ReplacePublisherAccountMonitoredReceiver"

# Session expiry markers in error responses
SESSION_NOT_FOUND_CODE = "SessionIdNotFound"
SESSION_EXPIRED_MESSAGES = ("Session not active", "timed out")

# Attempts per data operation, counting the retry after re-authentication
MAX_SESSION_ATTEMPTS = 2

DEFAULT_TIMEOUT = 30.0
