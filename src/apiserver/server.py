"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the transport to one composed handler.

    SocketServer ── Connection ──► ThreadPool ──► _process_connection
                                                      │
                          read_request ◄──────────────┤ (keep-alive loop)
                          RequestParser.parse         │
                          handler(request)  ◄─────────┤ the whole chain
                          to_bytes / send_response ◄──┘

The server knows nothing about routing or middleware: it is given a single
``Handler`` (usually a middleware chain around a Router) and calls it once
per request. Everything it adds is protocol work:

    - parse errors, oversized requests  → 400 / 413 / 505, connection closed
    - first request too slow            → 408, connection closed
    - handler raises or returns None    → 500 for that request only
    - HEAD                              → headers only, no body bytes
    - keep-alive                        → Connection / Keep-Alive headers

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool
from .http import (
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    HTTPParseError,
    RequestParser,
    error,
    internal_error,
)
from .middleware import Handler


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class HTTPServer:
    """
    Multi-threaded HTTP/1.1 server around a single handler.

        server = HTTPServer(handler, ServerConfig(addr=":8080"))
        server.run()            # blocks; OSError if the address is taken

    ``shutdown()`` may be called from any thread (or by SIGINT/SIGTERM when
    ``run`` is on the main thread) and makes ``run`` return.
    """

    def __init__(self, handler: Handler, config: Optional[ServerConfig] = None):
        if not callable(handler):
            raise TypeError("handler must be callable")

        self.config = config or ServerConfig()
        self.config.validate()

        self._handler = handler
        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._running = False

    @property
    def handler(self) -> Handler:
        return self._handler

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port) once listening."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def run(self) -> None:
        """
        Serve until shut down.

        Raises:
            OSError: The listen address cannot be bound.
        """
        self.setup_logging()
        self._running = True
        self._thread_pool.start()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self) -> None:
        """Ask ``run`` to return."""
        self._socket_server.shutdown()

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_listening(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_for_shutdown(timeout)

    def setup_logging(self) -> None:
        """basicConfig with LOG_FORMAT at the configured level."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=LOG_FORMAT)
        logging.getLogger("apiserver").setLevel(level)

    def _shutdown(self) -> None:
        self._running = False
        self._thread_pool.shutdown(wait=True)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Accept-loop callback: hand the connection to a worker."""
        if not self._thread_pool.submit(self._process_connection, conn):
            logger.warning(f"[{conn.id}] Worker queue full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Service Unavailable")
            conn.close()

    def _process_connection(self, conn: Connection) -> None:
        """Keep-alive loop for one connection (worker thread)."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request Timeout")
                    break
                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e))
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] Bad request: {e}")
                    self._send_error(conn, e.status_code, str(e))
                    break

                response = self.serve(request)
                keep_alive = request.is_keep_alive and self.config.keep_alive

                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"

                data = response.to_bytes(
                    self.config.server_name,
                    include_body=request.method != "HEAD",
                )
                if not conn.send_response(data):
                    break
                if not keep_alive or response.headers.get("Connection") == "close":
                    break
                conn.set_keep_alive()

    def serve(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run the handler for one parsed request.

        A handler fault never escapes: an exception, or a chain that
        returns no response, becomes a 500 for this request only.
        """
        try:
            response = self._handler(request)
        except Exception:
            logger.exception(f"Handler error for {request.method} {request.path}")
            return internal_error()

        if not isinstance(response, HTTPResponse):
            logger.error(
                f"Handler returned {type(response).__name__} instead of a response "
                f"for {request.method} {request.path}"
            )
            return internal_error()

        return response

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        """Error sent before (or instead of) running the handler."""
        response = error(message, status)
        response.set_header("Connection", "close")
        conn.send_response(response.to_bytes(self.config.server_name))
