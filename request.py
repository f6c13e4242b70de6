"""Gemini request model and URL validation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from config import GEMINI_SCHEME, ServerConfig
from response import STATUS_BAD_REQUEST, STATUS_PROXY_REQUEST_REFUSED, GeminiError

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BAD_PERCENT_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class GeminiRequestError(GeminiError, ValueError):
    """Client-caused request error carrying a Gemini status code."""

    status_code = STATUS_BAD_REQUEST
    meta = "Bad URL"


class BadURLError(GeminiRequestError):
    meta = "Bad URL"


class EmptyHostError(GeminiRequestError):
    meta = "Empty hostname"


class WrongPortError(GeminiRequestError):
    status_code = STATUS_PROXY_REQUEST_REFUSED
    meta = "Wrong port"


class WrongHostError(GeminiRequestError):
    status_code = STATUS_PROXY_REQUEST_REFUSED
    meta = "Wrong hostname"


class BadSchemeError(GeminiRequestError):
    status_code = STATUS_PROXY_REQUEST_REFUSED
    meta = "URL Scheme Not Accepted"


@dataclass(slots=True)
class GeminiRequest:
    raw_target: str
    host: str
    path: str
    scheme: str | None = None
    port: str | None = None
    query: str = ""

    @property
    def needs_directory_redirect(self) -> bool:
        return self.path == ""

    @property
    def redirect_target(self) -> str:
        return f"{self.raw_target}/"

    @classmethod
    def from_line(cls, line: str) -> "GeminiRequest":
        """Parse a trimmed request line into its URL components."""
        if _CONTROL_CHARS.search(line):
            raise BadURLError(f"Control characters in request: {line!r}")
        try:
            parts = urlsplit(line)
        except ValueError as exc:
            raise BadURLError(f"Unparseable URL: {line!r}") from exc

        if _BAD_PERCENT_ESCAPE.search(parts.netloc) or _BAD_PERCENT_ESCAPE.search(parts.path):
            raise BadURLError(f"Malformed percent escape: {line!r}")

        host, port = _split_netloc(parts.netloc)
        return cls(
            raw_target=line,
            host=unquote(host),
            path=unquote(parts.path),
            scheme=parts.scheme or None,
            port=port,
            query=parts.query,
        )


def _split_netloc(netloc: str) -> tuple[str, str | None]:
    """Return the host exactly as written (case preserved) and the port, if any."""
    hostport = netloc.rpartition("@")[2]
    if hostport.startswith("["):
        host, sep, rest = hostport[1:].partition("]")
        if not sep:
            raise BadURLError(f"Unterminated IPv6 literal: {netloc!r}")
        if rest and not rest.startswith(":"):
            raise BadURLError(f"Unexpected text after IPv6 literal: {netloc!r}")
        port = rest[1:] if rest else ""
    else:
        host, sep, port = hostport.partition(":")
        if not sep:
            port = ""

    if port and not (port.isascii() and port.isdigit()):
        raise BadURLError(f"Invalid port: {port!r}")
    return host, port or None


def validate_request(line: str, config: ServerConfig) -> GeminiRequest:
    """Parse a request line and check it targets this server."""
    request = GeminiRequest.from_line(line)

    if not request.host:
        raise EmptyHostError(f"The URL hostname was blank: {line}")
    if request.port is not None and request.port != config.bind_port:
        raise WrongPortError(f"The URL port doesn't match {config.bind_port}: {request.port}")
    if request.host != config.hostname:
        raise WrongHostError(f"The URL hostname doesn't match {config.hostname}: {request.host}")
    if request.scheme is not None and request.scheme != GEMINI_SCHEME:
        raise BadSchemeError(f"The URL scheme wasn't {GEMINI_SCHEME}: {request.scheme}")
    return request
