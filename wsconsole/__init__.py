__version__ = "0.3.0"

from wsconsole.admission import Admission, AdmissionPolicy
from wsconsole.config import Mode, TlsMaterial, TransportConfig, build_config, build_ssl_context
from wsconsole.console import ConsoleLogHandler, ConsoleUI
from wsconsole.errors import (
    ConfigError,
    ConnectError,
    ConnectionClosed,
    PeerError,
    ProtocolError,
    TLSConfigurationError,
    WsConsoleError,
)
from wsconsole.orchestrator import ConnectionOrchestrator, State
from wsconsole.peer import PeerHandle
from wsconsole.relay import MessageRelay
from wsconsole.websocket import AsyncWebSocket

__all__ = [
    "Admission",
    "AdmissionPolicy",
    "AsyncWebSocket",
    "ConfigError",
    "ConnectError",
    "ConnectionClosed",
    "ConnectionOrchestrator",
    "ConsoleLogHandler",
    "ConsoleUI",
    "MessageRelay",
    "Mode",
    "PeerError",
    "PeerHandle",
    "ProtocolError",
    "State",
    "TLSConfigurationError",
    "TlsMaterial",
    "TransportConfig",
    "WsConsoleError",
    "build_config",
    "build_ssl_context",
]
