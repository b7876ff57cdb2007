"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable of the server in one dataclass.

The only value most deployments set is the listen address, written the
way it is written on the command line:

    ":8080"             all interfaces, port 8080
    "127.0.0.1:8080"    loopback only
    "[::1]:8080"        IPv6 loopback
    ":0"                any free port (tests)

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION SOURCES                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Command-line arguments   python -m apiserver --addr :9000      │
    │   2. Environment variables    APISERVER_ADDR=:9000                  │
    │   3. Defaults                 (this dataclass)                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Values are validated once at startup (``validate``) so a bad address or
worker count stops the process before it binds anything.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_addr(addr: str) -> Tuple[str, int]:
    """
    Split ``host:port`` into its parts.

        parse_addr(":8080")          -> ("", 8080)
        parse_addr("localhost:80")   -> ("localhost", 80)
        parse_addr("[::1]:8080")     -> ("::1", 8080)

    Raises:
        ValueError: Missing or non-numeric port, or malformed IPv6 host.
    """
    if ":" not in addr:
        raise ValueError(f"address {addr!r}: missing port")

    host, _, port_text = addr.rpartition(":")
    if host.startswith("["):
        if not host.endswith("]"):
            raise ValueError(f"address {addr!r}: missing ']' in IPv6 host")
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"address {addr!r}: IPv6 host must be in brackets")

    if not port_text.isdigit():
        raise ValueError(f"address {addr!r}: invalid port {port_text!r}")

    return host, int(port_text)


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK     addr, backlog, buffer_size, timeout
    HTTP        keep_alive, keep_alive_timeout, max_request_size
    THREADING   min_workers, max_workers
    LOGGING     log_level
    IDENTITY    server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    addr: str = ":8080"
    """Listen address, ``host:port``. An empty host means all interfaces."""

    backlog: int = 128
    """Maximum number of queued connections."""

    buffer_size: int = 8192
    """Bytes per ``recv`` call."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds for the first request on a connection."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    """Idle time allowed between requests on a kept-alive connection."""

    max_request_size: int = 10 * 1024 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    server_name: str = "apiserver/1.0"

    @property
    def host(self) -> str:
        """Interface to bind; ``0.0.0.0`` when the address has no host."""
        host, _ = parse_addr(self.addr)
        return host or "0.0.0.0"

    @property
    def port(self) -> int:
        _, port = parse_addr(self.addr)
        return port

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """
        Build a configuration from environment variables.

            APISERVER_ADDR       listen address       (default ":8080")
            APISERVER_WORKERS    max worker threads   (default 16)
            APISERVER_TIMEOUT    socket timeout, s    (default 30)
            APISERVER_LOG_LEVEL  logging level        (default INFO)

        Keyword ``overrides`` win over the environment.
        """
        max_workers = int(os.getenv("APISERVER_WORKERS", "16"))
        values = dict(
            addr=os.getenv("APISERVER_ADDR", ":8080"),
            min_workers=min(cls.min_workers, max_workers),
            max_workers=max_workers,
            timeout=float(os.getenv("APISERVER_TIMEOUT", "30")),
            log_level=os.getenv("APISERVER_LOG_LEVEL", "INFO"),
        )
        values.update(overrides)
        return cls(**values)

    def validate(self) -> None:
        """
        Check every value, raising ``ValueError`` on the first bad one.
        """
        _, port = parse_addr(self.addr)
        if not 0 <= port < 65536:
            raise ValueError(f"Invalid port: {port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")
        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive or None")
        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be positive")
        if self.max_request_size < 1:
            raise ValueError("max_request_size must be positive")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")
