"""TCP client that sends one request and collects the whole reply."""

from __future__ import annotations

import logging
import re
import socket

log = logging.getLogger(__name__)

RECEIVE_CHUNK = 1000
_IP = re.compile(r"\s*[+-]?\d+\.\s*[+-]?\d+\.\s*[+-]?\d+\.\s*[+-]?\d+")


def is_ip(host: str) -> bool:
    """Whether ``host`` starts with four dotted numbers."""
    return _IP.match(host) is not None


class Connection:
    """A server address to which requests are sent one at a time."""

    def __init__(self, timeout: float | None = None):
        self.host: str | None = None
        self.port = 0
        self.timeout = timeout

    def start_client(self, host: str, port: int) -> bool:
        """Select the server, resolving ``host`` unless it is an address."""
        self.port = port
        if is_ip(host):
            self.host = host
            return True
        try:
            self.host = socket.gethostbyname(host)
        except OSError as error:
            raise ConnectionError(f"cannot resolve {host!r}") from error
        return True

    def send_data(self, data: bytes | bytearray | memoryview) -> bytes:
        """Send ``data`` and return everything the server replies with."""
        if self.host is None:
            raise ConnectionError("no server selected")
        payload = bytes(data)
        chunks = []
        try:
            with socket.create_connection((self.host, self.port),
                                          timeout=self.timeout) as sock:
                sock.sendall(payload)
                while chunk := sock.recv(RECEIVE_CHUNK):
                    chunks.append(chunk)
        except OSError as error:
            raise ConnectionError(
                f"request to {self.host}:{self.port} failed"
            ) from error
        log.info("fetch: %s", payload.decode("latin-1"))
        return b"".join(chunks)