"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps an accepted socket with request framing, timeouts and keep-alive
bookkeeping.

    ┌─────┐ read_request ┌─────────┐ send_response ┌────────────┐
    │ NEW │─────────────►│ READING │──────────────►│ KEEP_ALIVE │──┐
    └─────┘              └─────────┘               └────────────┘  │
                              ▲                                    │
                              └────────────────────────────────────┘
                                        close() → CLOSED

Framing is head-then-Content-Length: bytes are buffered until CRLF CRLF,
then exactly Content-Length more bytes are read. Anything after that stays
in the buffer for the next request on the connection (pipelining).

The first request gets ``timeout`` seconds; later requests on a kept-alive
connection get ``keep_alive_timeout`` and an idle timeout there simply
ends the connection.

=============================================================================
"""

import socket
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import uuid

from ..http.request import HTTPParseError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One client connection.

    Attributes:
        socket: The accepted client socket.
        address: Peer (ip, port).
        id: Short identifier used in log lines.
        requests_handled: Requests read so far on this connection.
    """

    socket: socket.socket
    address: tuple[str, int]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    def read_request(self) -> Optional[bytes]:
        """
        Read the bytes of exactly one request.

        Returns:
            The request bytes, or None when the client closed the
            connection (or went idle on a kept-alive connection) before
            sending a new request.

        Raises:
            TimeoutError: The first request did not arrive in time.
            HTTPParseError: Oversized request (413), bad Content-Length (400)
                or a body cut short by the client (400).
        """
        self.state = ConnectionState.READING
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    if self._buffer.strip():
                        raise HTTPParseError("Connection closed mid-request")
                    return None
                self._append(chunk)

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise HTTPParseError(
                    f"Request too large: {body_start + content_length} bytes",
                    status_code=413,
                )

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    raise HTTPParseError(
                        f"Incomplete body: expected {content_length} bytes"
                    )
                self._append(chunk)

            request_end = body_start + content_length
            data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]
            self.requests_handled += 1
            self.state = ConnectionState.PROCESSING
            return data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _append(self, chunk: bytes) -> None:
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(self._buffer)} bytes",
                status_code=413,
            )

    @staticmethod
    def _content_length(head: bytes) -> int:
        """Content-Length from the raw head, needed before full parsing."""
        for line in head.split(b"\r\n")[1:]:
            name, sep, value = line.partition(b":")
            if sep and name.strip().lower() == b"content-length":
                try:
                    length = int(value.strip())
                except ValueError:
                    raise HTTPParseError("Invalid Content-Length header")
                if length < 0:
                    raise HTTPParseError("Invalid Content-Length header")
                return length
        return 0

    def send_response(self, data: bytes) -> bool:
        """
        Write a serialised response.

        Returns:
            False if the client has gone away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self) -> None:
        self.state = ConnectionState.KEEP_ALIVE

    def close(self) -> None:
        """Half-close, drain briefly, then release the socket. Idempotent."""
        if self.state is ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
