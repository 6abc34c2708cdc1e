"""
Networking and concurrency: the listening socket, client connections and
the worker thread pool. Nothing here knows about files or paths.
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
