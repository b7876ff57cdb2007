"""
Transport: listening socket, per-client connections, worker pool.

    SocketServer ── accepts ──► Connection ── queued on ──► ThreadPool
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
