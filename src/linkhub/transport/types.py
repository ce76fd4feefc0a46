"""Value types shared by the transport layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import cast

from linkhub.transport.exceptions import InvalidResponseError, LinkHubError


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one transport call.

    Attributes:
        success: Whether the device/server accepted the request
        payload: Parsed JSON (dict/list) when the body was JSON, otherwise the raw text
        error: The error that made the call fail (None if success=True)

    Never retried by the transport; retrying is the caller's decision.
    """

    success: bool
    payload: object = None
    error: LinkHubError | None = None

    @classmethod
    def ok(cls, payload: object = None) -> CommandResult:
        return cls(success=True, payload=payload)

    @classmethod
    def failed(cls, error: LinkHubError, payload: object = None) -> CommandResult:
        return cls(success=False, payload=payload, error=error)

    def unwrap(self) -> object:
        """Return the payload, raising the stored error if the call failed."""
        if not self.success:
            raise self.error or LinkHubError("command failed")
        return self.payload

    def json_object(self) -> dict[str, object]:
        """Return the payload as a JSON object or raise InvalidResponseError."""
        payload = self.unwrap()
        if not isinstance(payload, dict):
            raise InvalidResponseError("expected a JSON object", str(payload))
        return cast("dict[str, object]", payload)

    @property
    def text(self) -> str:
        return self.payload if isinstance(self.payload, str) else ""
