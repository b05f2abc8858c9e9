class WsConsoleError(Exception):
    """Base error for wsconsole."""

    exit_code = 1


class ConfigError(WsConsoleError):
    """Raised when command line options do not form a usable configuration."""


class TLSConfigurationError(ConfigError):
    """Raised when certificate, key or CA material cannot be loaded."""


class ConnectError(WsConsoleError):
    """Raised when dialing a server or binding a listener fails."""


class ProtocolError(WsConsoleError):
    """Raised when a WebSocket handshake or frame is malformed."""


class PeerError(WsConsoleError):
    """Raised for transport errors on an established connection."""


class ConnectionClosed(PeerError):
    """Raised by ``recv`` once the remote side has closed the connection."""

    def __init__(self, code: int = 1006, reason: str = "") -> None:
        super().__init__(f"connection closed (code: {code})")
        self.code = code
        self.reason = reason
