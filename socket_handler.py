"""Low-level socket read/write utilities for the Gemini request line."""

from __future__ import annotations

import codecs
import re
import socket
import time
from dataclasses import dataclass

from config import MAX_REQUEST_LINE_BYTES, READ_BUFFER_SIZE
from request import GeminiRequestError
from response import GeminiResponse

CRLF = b"\r\n"

# Unicode whitespace minus the FS/GS/RS/US separators, which str.strip() also removes.
_SURROUNDING_SPACE = re.compile(r"^[^\S\x1c-\x1f]+|[^\S\x1c-\x1f]+\Z")


class RequestLineError(Exception):
    """Raised when the connection fails before a request line can be answered."""


class MalformedFramingError(RequestLineError):
    """Raised when received bytes do not end with CRLF; no reply is sent."""


class SocketTimeoutError(RequestLineError):
    """Raised when the connection deadline elapses during socket I/O."""


class RequestTooLongError(GeminiRequestError):
    meta = "URL too long"


class InvalidEncodingError(GeminiRequestError):
    meta = "Non-UTF8 URL"


class EmptyRequestError(GeminiRequestError):
    meta = "Empty URL"


@dataclass(slots=True)
class ConnectionDeadline:
    """Absolute deadline shared by every blocking call on one connection."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "ConnectionDeadline":
        return cls(expires_at=time.monotonic() + seconds)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def arm(self, client_socket: socket.socket) -> None:
        remaining = self.remaining()
        if remaining <= 0:
            raise SocketTimeoutError("Connection deadline elapsed")
        client_socket.settimeout(remaining)


def receive_request_line(
    client_socket: socket.socket,
    deadline: ConnectionDeadline | None = None,
) -> bytes:
    """Receive bytes until CRLF, the line cap is exceeded, the bytes stop being
    valid UTF-8, or the peer stops sending.
    """
    buffer = bytearray()
    decoder = codecs.getincrementaldecoder("utf-8")()
    while not buffer.endswith(CRLF) and len(buffer) <= MAX_REQUEST_LINE_BYTES:
        if deadline is not None:
            deadline.arm(client_socket)
        try:
            chunk = client_socket.recv(READ_BUFFER_SIZE - len(buffer))
        except socket.timeout as exc:
            if buffer:
                raise MalformedFramingError("Timed out before the request line ended") from exc
            raise SocketTimeoutError("Timed out waiting for request bytes") from exc

        if not chunk:
            break
        buffer.extend(chunk)
        try:
            decoder.decode(chunk, final=False)
        except UnicodeDecodeError:
            break
    return bytes(buffer)


def decode_request_line(raw: bytes) -> str:
    """Validate raw request bytes and return the trimmed URL text."""
    if len(raw) > MAX_REQUEST_LINE_BYTES:
        raise RequestTooLongError(f"The request line was {len(raw)} bytes long")

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidEncodingError(f"The request line is not UTF-8: {raw!r}") from exc

    if not text.endswith("\r\n"):
        raise MalformedFramingError("The request line didn't end with CRLF")

    line = _SURROUNDING_SPACE.sub("", text)
    if not line:
        raise EmptyRequestError("The request line was empty")
    return line


def write_gemini_response(
    client_socket: socket.socket,
    response: GeminiResponse,
    deadline: ConnectionDeadline | None = None,
) -> int:
    """Write the status line and any body as a single payload."""
    payload = response.to_bytes()
    if deadline is not None:
        deadline.arm(client_socket)
    try:
        client_socket.sendall(payload)
    except socket.timeout as exc:
        raise SocketTimeoutError("Timed out writing the response") from exc
    return len(payload)
