"""HTTP/1.0 requests to the drive's file server."""

from __future__ import annotations

import re
from typing import Protocol

from .encoding import base64_encode, base64_len

_HEADER_END = b"\r\n\r\n"
_NUMBER = re.compile(rb"\s*\+?(\d+)")


class Transport(Protocol):
    def start_client(self, host: str, port: int) -> bool: ...

    def send_data(self, data: bytes) -> bytes: ...


def extract_payload(response: bytes | bytearray | memoryview) -> bytes | None:
    """The body of an HTTP response, or None if it has no complete header."""
    response = bytes(response)
    start = response.find(b"HTTP")
    if start < 0:
        return None
    end = response.find(_HEADER_END, start)
    if end < 0:
        return None
    return response[end + len(_HEADER_END):]


class HttpClient:
    """Fetches and stores file data through a request/reply transport."""

    def __init__(self, connection: Transport):
        self.connection = connection

    def _exchange(self, host: str, port: int, request: bytes) -> bytes | None:
        if not self.connection.start_client(host, port):
            return None
        return self.connection.send_data(request)

    def post_block(self, host: str, port: int, url: str, params: str,
                   data: bytes | bytearray | memoryview) -> bool:
        """Upload ``data`` base64 encoded; False if no connection was made."""
        data = bytes(data)
        header = (
            f"PUT {url}{params}&b64=1 HTTP/1.0\r\n"
            f"Host: {host}\r\n"
            f"Content-Length: {base64_len(len(data))}\r\n\r\n"
        ).encode("latin-1")
        return self._exchange(host, port, header + base64_encode(data)) is not None

    def make_request(self, host: str, port: int, url: str,
                     params: str) -> bytes | None:
        """GET ``url`` with ``params``; return the body, or None on failure."""
        request = (
            f"GET {url}{params} HTTP/1.0\r\nHost: {host}\r\n\r\n"
        ).encode("latin-1")
        response = self._exchange(host, port, request)
        if response is None:
            return None
        return extract_payload(response)

    def get_size(self, host: str, port: int, url: str) -> int:
        """Size of the file at ``url``, or 0 if it cannot be found out."""
        payload = self.make_request(host, port, url, "&l=1")
        if payload is None:
            return 0
        match = _NUMBER.match(payload)
        if match is None:
            return 0
        return int(match.group(1)) & 0xFFFFFFFF

    def get_range(self, host: str, port: int, url: str,
                  start: int, end: int) -> bytes | None:
        """The bytes of the file at ``url`` from ``start`` to ``end``."""
        return self.make_request(host, port, url, f"&s={start}&e={end}")