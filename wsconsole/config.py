from __future__ import annotations

import base64
import enum
import logging
import ssl
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from .errors import ConfigError, TLSConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PROTOCOL_VERSION = 13
DEFAULT_TIMEOUT = 10.0


class Mode(enum.Enum):
    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class TlsMaterial:
    """
    Certificate, key and trust settings for a TLS endpoint.

    ``certificate`` and ``private_key`` are file paths whose readability has
    been checked; ``trusted_cas`` holds the PEM text of the CA bundle.
    """

    certificate: Path
    private_key: Path
    trusted_cas: str | None = None
    cipher_list: str | None = None
    honor_cipher_order: bool = False
    request_peer_certificate: bool = False
    reject_unverified_peers: bool = False


@dataclass(frozen=True)
class TransportConfig:
    mode: Mode
    host: str
    port: int
    path: str = "/"
    secure: bool = False
    protocol_version: int = DEFAULT_PROTOCOL_VERSION
    origin: str | None = None
    subprotocol: str | None = None
    headers: tuple[tuple[str, str], ...] = field(default_factory=tuple)
    timeout: float = DEFAULT_TIMEOUT
    tls: TlsMaterial | None = None

    @property
    def url(self) -> str:
        if self.mode is Mode.SERVER:
            scheme = "wss" if self.tls else "ws"
        else:
            scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.host}:{self.port}{self.path}"

    def request_headers(self) -> list[tuple[str, str]]:
        """Extra handshake headers sent when dialing out."""
        headers: list[tuple[str, str]] = []
        if self.origin:
            headers.append(("Origin", self.origin))
        if self.subprotocol:
            headers.append(("Sec-WebSocket-Protocol", self.subprotocol))
        headers.extend(self.headers)
        return headers


def parse_ws_url(url: str) -> tuple[bool, str, int, str]:
    """Return (secure, host, port, path) for a ws:// or wss:// URL."""
    if "://" not in url:
        url = f"ws://{url}"
    parsed = urlparse(url)
    if parsed.scheme not in ("ws", "wss"):
        raise ConfigError(f"Only ws and wss schemes are supported: {url!r}")
    secure = parsed.scheme == "wss"
    host = parsed.hostname or ""
    if not host:
        raise ConfigError(f"Missing host in URL: {url!r}")
    try:
        port = parsed.port or (443 if secure else 80)
    except ValueError as exc:
        raise ConfigError(f"Invalid port in URL: {url!r}") from exc
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return secure, host, port, path


def parse_header(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise ConfigError(f"Header must look like 'Name: value', got {raw!r}")
    return name.strip(), value.strip()


def basic_auth_header(credentials: str) -> tuple[str, str]:
    if ":" not in credentials:
        raise ConfigError("Auth must look like 'username:password'")
    token = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
    return "Authorization", f"Basic {token}"


def _read_file(path: str, what: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise ConfigError(f"Unable to read {what} {path!r}: {exc.strerror or exc}") from exc


def build_tls_material(
    cert: str | None,
    key: str | None,
    ca: str | None = None,
    cipher: str | None = None,
    honor_cipher_order: bool = False,
    request_client_cert: bool = False,
    reject_unverified: bool = False,
) -> TlsMaterial | None:
    """Validate the all-or-nothing certificate/key pair and read the files."""
    if bool(cert) != bool(key):
        raise ConfigError("--cert and --key must be given together")
    if not cert:
        if ca or cipher or honor_cipher_order or request_client_cert or reject_unverified:
            logger.warning("TLS options ignored without --cert and --key")
        return None

    _read_file(cert, "certificate")
    _read_file(key, "private key")
    trusted = _read_file(ca, "CA bundle").decode("ascii", errors="replace") if ca else None

    return TlsMaterial(
        certificate=Path(cert),
        private_key=Path(key),
        trusted_cas=trusted,
        cipher_list=cipher,
        honor_cipher_order=honor_cipher_order,
        request_peer_certificate=request_client_cert,
        reject_unverified_peers=reject_unverified,
    )


def build_config(
    connect: str | None = None,
    listen: int | None = None,
    protocol: int | None = None,
    origin: str | None = None,
    path: str | None = None,
    host: str | None = None,
    cert: str | None = None,
    key: str | None = None,
    ca: str | None = None,
    cipher: str | None = None,
    honor_cipher_order: bool = False,
    request_client_cert: bool = False,
    reject_unverified: bool = False,
    subprotocol: str | None = None,
    headers: Iterable[str] = (),
    auth: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> TransportConfig:
    """
    Turn raw option values into a TransportConfig.

    Exactly one of ``connect`` (a URL) and ``listen`` (a port) must be given.
    Raises ConfigError for any invalid combination or unreadable file.
    """
    if connect and listen is not None:
        raise ConfigError("--connect and --listen are mutually exclusive")
    if not connect and listen is None:
        raise ConfigError("One of --connect or --listen is required")

    version = protocol if protocol is not None else DEFAULT_PROTOCOL_VERSION
    if version not in (8, 13):
        raise ConfigError(f"Unsupported protocol version: {version}")
    if timeout <= 0:
        raise ConfigError("--timeout must be positive")

    extra = [parse_header(h) for h in headers]
    if auth:
        extra.append(basic_auth_header(auth))

    tls = build_tls_material(
        cert,
        key,
        ca=ca,
        cipher=cipher,
        honor_cipher_order=honor_cipher_order,
        request_client_cert=request_client_cert,
        reject_unverified=reject_unverified,
    )

    if listen is not None:
        if not 0 <= listen <= 65535:
            raise ConfigError(f"Port must be between 0 and 65535, got {listen}")
        listen_path = path or "/"
        if not listen_path.startswith("/"):
            listen_path = f"/{listen_path}"
        return TransportConfig(
            mode=Mode.SERVER,
            host=host or "0.0.0.0",
            port=listen,
            path=listen_path,
            secure=tls is not None,
            protocol_version=version,
            origin=origin,
            subprotocol=subprotocol,
            headers=tuple(extra),
            timeout=timeout,
            tls=tls,
        )

    if host or path:
        logger.warning("--host and --path only apply to --listen")
    secure, url_host, url_port, url_path = parse_ws_url(connect)
    if tls is not None and not secure:
        logger.warning("TLS options ignored for a ws:// URL; use wss://")
    return TransportConfig(
        mode=Mode.CLIENT,
        host=url_host,
        port=url_port,
        path=url_path,
        secure=secure,
        protocol_version=version,
        origin=origin,
        subprotocol=subprotocol,
        headers=tuple(extra),
        timeout=timeout,
        tls=tls,
    )


def build_ssl_context(config: TransportConfig) -> ssl.SSLContext | None:
    """Create the SSL context for the configured side, or None for plain TCP."""
    tls = config.tls
    if config.mode is Mode.SERVER:
        if tls is None:
            return None
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        if tls.request_peer_certificate:
            ctx.verify_mode = (
                ssl.CERT_REQUIRED if tls.reject_unverified_peers else ssl.CERT_OPTIONAL
            )
        else:
            ctx.verify_mode = ssl.CERT_NONE
    else:
        if not config.secure:
            return None
        if tls is None:
            return ssl.create_default_context()
        ctx = ssl.create_default_context()
        if not tls.reject_unverified_peers:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE

    if tls.honor_cipher_order:
        ctx.options |= ssl.OP_CIPHER_SERVER_PREFERENCE
    try:
        ctx.load_cert_chain(str(tls.certificate), str(tls.private_key))
        if tls.trusted_cas:
            ctx.load_verify_locations(cadata=tls.trusted_cas)
        elif config.mode is Mode.SERVER and tls.request_peer_certificate:
            ctx.load_default_certs(ssl.Purpose.CLIENT_AUTH)
        if tls.cipher_list:
            ctx.set_ciphers(tls.cipher_list)
    except (ssl.SSLError, OSError, ValueError) as exc:
        raise TLSConfigurationError(f"Unable to load TLS material: {exc}") from exc
    return ctx
