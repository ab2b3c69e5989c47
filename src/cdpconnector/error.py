"""Error taxonomy for the CDP connector.

All command failures are reported as a single exception type, ``CdpError``,
tagged with an ``ErrorCode``. The code tells callers what went wrong; the
details (method, params and, for protocol errors, the raw cause returned by
the target) tell them which command it happened to.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from cdpconnector.wire import WireErrorCause


class ErrorCode(str, Enum):
    """Kinds of failure a command can end with."""

    NOT_CONNECTED = "not_connected"
    PROTOCOL = "protocol"
    TIMEOUT = "timeout"
    TAB_CRASHED = "tab_crashed"


class CdpError(Exception):
    """A failed CDP command.

    Attributes:
        code: What kind of failure this is
        method: The command method (e.g. "Page.navigate")
        params: The command params as they were sent
        cause: The ``error`` object returned by the target (protocol errors only)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        method: str | None = None,
        params: dict[str, Any] | None = None,
        cause: WireErrorCause | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.method = method
        self.params = params
        self.cause = cause

    @property
    def details(self) -> dict[str, Any]:
        details: dict[str, Any] = {"method": self.method, "params": self.params}
        if self.cause is not None:
            details["cause"] = self.cause.to_json()
        return details

    @property
    def retriable(self) -> bool:
        """Whether reconnecting and sending the command again may succeed."""
        return self.code is ErrorCode.NOT_CONNECTED

    def __repr__(self) -> str:
        return f"CdpError({self.code.value}, {self.message!r}, method={self.method!r})"

    # Factory methods

    @classmethod
    def not_connected(
        cls, method: str | None = None, params: dict[str, Any] | None = None
    ) -> CdpError:
        """Command attempted (or still pending) without a connection."""
        return cls(ErrorCode.NOT_CONNECTED, "CDP not connected", method, params)

    @classmethod
    def protocol(
        cls,
        method: str,
        params: dict[str, Any] | None,
        cause: WireErrorCause,
    ) -> CdpError:
        """Target rejected the command.

        The message joins the cause's ``message`` and ``data`` with a space,
        leaving out whichever is empty.
        """
        parts = [cause.message, cause.data]
        text = " ".join(str(part) for part in parts if part)
        return cls(ErrorCode.PROTOCOL, f"{method}: {text}", method, params, cause)

    @classmethod
    def timeout(cls, method: str, params: dict[str, Any] | None = None) -> CdpError:
        """No response arrived before the command deadline."""
        return cls(ErrorCode.TIMEOUT, "CDP timeout", method, params)

    @classmethod
    def tab_crashed(cls, method: str, params: dict[str, Any] | None = None) -> CdpError:
        """Target crashed while the command was pending."""
        return cls(ErrorCode.TAB_CRASHED, "Tab crashed", method, params)
