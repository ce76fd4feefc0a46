"""Error kinds raised by the session, transport and parsing layers.

Poller and PushListener catch every ``LinkHubError`` at their boundary and turn
it into a health signal; SessionManager errors propagate to the operation they
were protecting.
"""

from __future__ import annotations


class LinkHubError(Exception):
    """Base class for all linkhub communication errors."""


class AuthError(LinkHubError):
    """Credentials were rejected by the cloud portal.

    Raised when:
    - The login response body contains the portal's failure marker
    - The credential POST returns a non-success status
    - No credentials are configured

    Never retried automatically.

    Attributes:
        reason: Specific failure reason
        status: HTTP status of the login response (0 if none)

    """

    def __init__(self, reason: str, status: int = 0) -> None:
        """Initialize auth error with reason and HTTP status."""
        self.reason: str = reason
        self.status: int = status
        super().__init__(f"Authentication failed: {reason} (status: {status})")


class SessionExpiredError(LinkHubError):
    """The server no longer recognizes the session.

    Raised when:
    - Keepalive returns a non-success status
    - Any authenticated request returns 401 or 403

    Recoverable with a single re-login.

    Attributes:
        reason: Specific failure reason
        status: HTTP status that signalled expiry

    """

    def __init__(self, reason: str, status: int = 0) -> None:
        """Initialize session expired error."""
        self.reason: str = reason
        self.status: int = status
        super().__init__(f"Session expired: {reason} (status: {status})")


class TransportError(LinkHubError):
    """The request never produced a usable HTTP response.

    Raised when:
    - The request timed out
    - DNS resolution, TCP connect or TLS handshake failed
    - The server answered with an unexpected non-success status

    Attributes:
        reason: Specific failure reason
        url: Target URL of the failed request

    """

    def __init__(self, reason: str, url: str = "") -> None:
        """Initialize transport error with reason and URL."""
        self.reason: str = reason
        self.url: str = url
        super().__init__(f"Transport failure: {reason}" + (f" ({url})" if url else ""))


class RateLimitError(LinkHubError):
    """The server asked us to slow down (HTTP 429).

    Attributes:
        retry_after: Seconds the caller should wait before the next request
        url: Target URL of the rate-limited request

    """

    def __init__(self, retry_after: float, url: str = "") -> None:
        """Initialize rate limit error with the suggested backoff."""
        self.retry_after: float = retry_after
        self.url: str = url
        super().__init__(f"Rate limited, retry after {retry_after:.0f}s")


class InvalidResponseError(LinkHubError):
    """A response arrived but could not be parsed into the expected payload.

    Raised when:
    - The body is not valid JSON where JSON is expected
    - Required fields are missing
    - A field has the wrong type

    Attributes:
        reason: What was wrong with the body
        body: Truncated raw body for diagnostics

    """

    def __init__(self, reason: str, body: str = "") -> None:
        """Initialize invalid response error."""
        self.reason: str = reason
        self.body: str = body[:200]
        super().__init__(f"Invalid response: {reason}")


class CommunicationFailure(LinkHubError):
    """Aggregate signal: a device has failed enough consecutive operations to be offline.

    Attributes:
        reason: Last failure reason
        consecutive_failures: Number of consecutive failures observed

    """

    def __init__(self, reason: str, consecutive_failures: int) -> None:
        """Initialize communication failure."""
        self.reason: str = reason
        self.consecutive_failures: int = consecutive_failures
        super().__init__(f"Communication failure after {consecutive_failures} attempts: {reason}")
