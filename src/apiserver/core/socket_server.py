"""
=============================================================================
TCP LISTENER
=============================================================================

Owns the listening socket and the accept loop.

    start(on_connection)
        ├── socket()  SO_REUSEADDR, TCP_NODELAY, 1s accept timeout
        ├── bind()    OSError is logged and re-raised to the caller
        ├── listen()
        └── accept loop ── Connection ──► on_connection(conn)
                 ▲
                 └── re-checks the running flag every second, so
                     shutdown() from any thread stops it

SIGTERM and SIGINT trigger ``shutdown()`` when ``start`` runs on the main
thread. Python only allows installing signal handlers there, so a server
started on a background thread (tests, embedding) leaves them alone and is
stopped with ``shutdown()`` instead.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Blocking TCP accept loop.

        server = SocketServer(ServerConfig(addr=":8080"))
        server.start(handle_connection)     # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._listening = threading.Event()
        self._stopped = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        Address actually bound, so ``":0"`` reports the port the OS chose.
        Falls back to the configured address before ``start``.
        """
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return host, port
        return self.config.host, self.config.port

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Fast restart after a crash; TIME_WAIT sockets do not block bind.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, on_connection: Callable[[Connection], None]) -> None:
        """
        Bind, listen and accept until ``shutdown()``.

        Raises:
            OSError: The address cannot be bound or listened on.
        """
        host, port = self.config.host, self.config.port
        self._stopped.clear()
        self._socket = self._create_socket()

        try:
            self._socket.bind((host, port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to listen on {self.config.addr}: {e}")
            self._socket.close()
            self._socket = None
            self._stopped.set()
            raise

        self._running = True
        self._setup_signals()
        self._listening.set()
        logger.info(f"Listening on {self.address[0]}:{self.address[1]}")

        try:
            self._accept_loop(on_connection)
        finally:
            self._cleanup()

    def _accept_loop(self, on_connection: Callable[[Connection], None]) -> None:
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            on_connection(conn)

    def shutdown(self) -> None:
        """Stop the accept loop. Safe from any thread, idempotent."""
        if self._running:
            logger.info("Shutting down listener...")
        self._running = False

    def _cleanup(self) -> None:
        self._restore_signals()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._listening.clear()
        self._stopped.set()
        logger.info("Listener stopped")

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._listening.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop has exited. False on timeout."""
        return self._stopped.wait(timeout)
