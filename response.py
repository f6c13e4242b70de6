"""Gemini response model and serializer."""

from __future__ import annotations

from dataclasses import dataclass

STATUS_SUCCESS = 20
STATUS_REDIRECT_TEMPORARY = 31
STATUS_TEMPORARY_FAILURE = 40
STATUS_NOT_FOUND = 51
STATUS_PROXY_REQUEST_REFUSED = 53
STATUS_BAD_REQUEST = 59

MIN_STATUS_CODE = 10
MAX_STATUS_CODE = 69


class GeminiError(Exception):
    """Base for per-connection failures that map onto a status line."""

    status_code: int = STATUS_BAD_REQUEST
    meta: str = "Bad request"

    def __init__(self, detail: str = "", *, meta: str | None = None) -> None:
        super().__init__(detail or self.meta)
        if meta is not None:
            self.meta = meta


def is_success(status_code: int) -> bool:
    return 20 <= status_code <= 29


@dataclass(slots=True)
class GeminiResponse:
    status_code: int
    meta: str
    body: bytes | None = None

    def __post_init__(self) -> None:
        if not MIN_STATUS_CODE <= self.status_code <= MAX_STATUS_CODE:
            raise ValueError(f"Status code out of range: {self.status_code}")
        if "\r" in self.meta or "\n" in self.meta:
            raise ValueError("Response meta cannot contain line breaks")
        if is_success(self.status_code) and self.body is None:
            raise ValueError("Success responses require a body")
        if not is_success(self.status_code) and self.body is not None:
            raise ValueError("Only success responses may carry a body")

    @classmethod
    def success(cls, meta: str, body: bytes) -> "GeminiResponse":
        return cls(status_code=STATUS_SUCCESS, meta=meta, body=body)

    @classmethod
    def redirect(cls, target: str) -> "GeminiResponse":
        return cls(status_code=STATUS_REDIRECT_TEMPORARY, meta=target)

    @classmethod
    def failure(cls, status_code: int, message: str) -> "GeminiResponse":
        return cls(status_code=status_code, meta=message)

    @classmethod
    def from_error(cls, error: GeminiError) -> "GeminiResponse":
        return cls.failure(error.status_code, error.meta)

    @property
    def head(self) -> bytes:
        return f"{self.status_code} {self.meta}\r\n".encode("utf-8")

    def to_bytes(self) -> bytes:
        """Serialize the status line and, for success, the raw body."""
        if self.body is None:
            return self.head
        return self.head + self.body
