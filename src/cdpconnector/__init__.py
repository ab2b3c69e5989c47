"""Chrome DevTools Protocol connector.

This module provides an asyncio client for the Chrome DevTools Protocol:
commands with correlated responses and timeouts, plus event fan-out, over a
single WebSocket.
"""

from cdpconnector.config import (
    ConnectorConfig,
    DiscoveryConfig,
    TransportConfig,
    validate_websocket_url,
)
from cdpconnector.error import CdpError, ErrorCode
from cdpconnector.events import EventEmitter
from cdpconnector.wire import (
    WireCommand,
    WireErrorCause,
    WireEvent,
    WireResponse,
    parse_message,
    serialize_command,
)
from cdpconnector.transport import Transport, TransportFactory, WebSocketTransport
from cdpconnector.connector import ChromeConnector, PendingCommand
from cdpconnector.discovery import (
    TargetInfo,
    find_websocket_debugger_url,
    get_version,
    list_targets,
    new_target,
)

__version__ = "0.1.0"

__all__ = [
    # Connector
    "ChromeConnector",
    "PendingCommand",
    "EventEmitter",
    # Errors
    "CdpError",
    "ErrorCode",
    # Configuration (Pydantic models)
    "ConnectorConfig",
    "TransportConfig",
    "DiscoveryConfig",
    "validate_websocket_url",
    # Wire format
    "WireCommand",
    "WireResponse",
    "WireErrorCause",
    "WireEvent",
    "parse_message",
    "serialize_command",
    # Transport
    "Transport",
    "TransportFactory",
    "WebSocketTransport",
    # Target discovery
    "TargetInfo",
    "list_targets",
    "new_target",
    "get_version",
    "find_websocket_debugger_url",
]
