"""Pydantic configuration models for the CDP connector.

These models are only used when a connector, transport or discovery call is
set up. The message path works with plain dicts and the dataclasses in
``cdpconnector.wire``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

WEBSOCKET_SCHEMES = ("ws://", "wss://")

DEFAULT_CRASH_EVENT = "Inspector.targetCrashed"


def validate_websocket_url(url: str | None) -> str:
    """Check that ``url`` looks like a WebSocket debugger URL.

    Raises:
        ValueError: if the URL is empty or not ws:// / wss://
    """
    if not url:
        raise ValueError("URL cannot be empty")
    if not url.startswith(WEBSOCKET_SCHEMES):
        raise ValueError(
            f"URL must start with one of: {', '.join(WEBSOCKET_SCHEMES)}"
        )
    return url


class TransportConfig(BaseModel):
    """Configuration for the aiohttp WebSocket transport.

    Attributes:
        heartbeat: Send WebSocket pings at this interval in seconds (None disables)
        max_message_size: Largest inbound frame in bytes, 0 for no limit.
            CDP replies such as screenshots routinely exceed aiohttp's 4 MiB default.
    """

    model_config = ConfigDict(frozen=True)

    heartbeat: float | None = Field(
        default=None,
        gt=0,
        description="WebSocket ping interval in seconds",
    )
    max_message_size: int = Field(
        default=0,
        ge=0,
        description="Maximum inbound message size in bytes (0 = unlimited)",
    )


class ConnectorConfig(BaseModel):
    """Configuration for ChromeConnector.

    Attributes:
        timeout: Per-command response deadline in seconds
        reject_on_crash: Fail pending commands when the target reports a crash
        reject_on_disconnect: Fail pending commands when the connection goes away
        crash_event: Event method that signals a crashed target
        transport: Options handed to the default WebSocket transport
    """

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(
        default=60.0,
        gt=0,
        description="Command timeout in seconds",
    )
    reject_on_crash: bool = True
    reject_on_disconnect: bool = True
    crash_event: str = Field(
        default=DEFAULT_CRASH_EVENT,
        min_length=1,
        description="Event method signalling that the target crashed",
    )
    transport: TransportConfig = Field(default_factory=TransportConfig)


class DiscoveryConfig(BaseModel):
    """Where to find the DevTools HTTP endpoint.

    Attributes:
        host: Host the browser listens on
        port: Remote debugging port (``--remote-debugging-port``)
        timeout: HTTP request timeout in seconds
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="localhost", min_length=1)
    port: int = Field(default=9222, gt=0, le=65535)
    timeout: float = Field(default=10.0, gt=0)

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Reject hosts given with a scheme."""
        if "://" in v:
            raise ValueError("host must not include a scheme")
        return v

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"
