"""Unit tests for Gemini response serialization."""

import pytest

from request import WrongHostError
from response import GeminiResponse


def test_success_response_writes_status_line_then_raw_body() -> None:
    response = GeminiResponse.success("text/plain; charset=utf-8", b"hello\x00world")

    assert response.to_bytes() == b"20 text/plain; charset=utf-8\r\nhello\x00world"


def test_success_response_allows_empty_body() -> None:
    response = GeminiResponse.success("text/plain; charset=utf-8", b"")

    assert response.to_bytes() == b"20 text/plain; charset=utf-8\r\n"


def test_redirect_has_no_body() -> None:
    response = GeminiResponse.redirect("gemini://example.local/")

    assert response.body is None
    assert response.to_bytes() == b"31 gemini://example.local/\r\n"


def test_error_response_from_exception_uses_its_status_and_meta() -> None:
    response = GeminiResponse.from_error(WrongHostError("other.host"))

    assert response.to_bytes() == b"53 Wrong hostname\r\n"


def test_meta_is_utf8_encoded() -> None:
    response = GeminiResponse.redirect("gemini://example.local/café")

    assert response.head == "31 gemini://example.local/café\r\n".encode("utf-8")


@pytest.mark.parametrize("status_code", [9, 70, 200])
def test_status_code_outside_range_is_rejected(status_code: int) -> None:
    with pytest.raises(ValueError, match="out of range"):
        GeminiResponse.failure(status_code, "nope")


def test_body_only_allowed_on_success() -> None:
    with pytest.raises(ValueError, match="Only success"):
        GeminiResponse(status_code=51, meta="File not found", body=b"x")

    with pytest.raises(ValueError, match="require a body"):
        GeminiResponse(status_code=20, meta="text/plain")


def test_meta_cannot_contain_line_breaks() -> None:
    with pytest.raises(ValueError, match="line breaks"):
        GeminiResponse.failure(59, "bad\r\nmeta")
