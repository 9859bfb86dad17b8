"""Fan-out of log messages to live subscribers."""

from __future__ import annotations

import queue
import threading
import time

from weighstation.state import LogMessage

DEFAULT_QUEUE_SIZE = 100


class LogBus:
    """Delivers log messages to every subscribed queue, dropping on overflow."""

    def __init__(self) -> None:
        self._clients: set[queue.Queue] = set()
        self._lock = threading.Lock()

    def subscribe(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> "queue.Queue[LogMessage]":
        """Register and return a new bounded queue of log messages."""
        client: queue.Queue = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._clients.add(client)
        return client

    def unsubscribe(self, client: queue.Queue) -> None:
        """Stop delivering messages to ``client``."""
        with self._lock:
            self._clients.discard(client)

    def broadcast(self, message: str, log_type: str) -> LogMessage:
        """Send a message to all subscribers; full queues miss it."""
        msg = LogMessage(time=time.strftime("%H:%M:%S"), message=message, log_type=log_type)
        with self._lock:
            clients = list(self._clients)
        for client in clients:
            try:
                client.put_nowait(msg)
            except queue.Full:
                pass
        return msg


_default_bus = LogBus()


def init() -> None:
    """Announce that logging is up."""
    broadcast_log("Система логирования инициализирована", "system")


def add_log_client(maxsize: int = DEFAULT_QUEUE_SIZE) -> "queue.Queue[LogMessage]":
    """Subscribe to the process-wide log bus."""
    return _default_bus.subscribe(maxsize)


def remove_log_client(client: queue.Queue) -> None:
    """Unsubscribe from the process-wide log bus."""
    _default_bus.unsubscribe(client)


def broadcast_log(message: str, log_type: str) -> LogMessage:
    """Broadcast on the process-wide log bus."""
    return _default_bus.broadcast(message, log_type)