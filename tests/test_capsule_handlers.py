"""Tests for turning request lines into Gemini responses."""

from __future__ import annotations

from pathlib import Path

import pytest

from config import ServerConfig
from handlers.capsule_handlers import handle_request_line

GEMTEXT = b"# Welcome\n\n=> /sub/ Sub capsule\n"


@pytest.fixture()
def config(tmp_path: Path) -> ServerConfig:
    root = tmp_path / "capsule"
    (root / "sub").mkdir(parents=True)
    (root / "index.gmi").write_bytes(GEMTEXT)
    (root / "sub" / "index.gmi").write_bytes(b"# Sub\n")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16)
    (root / "notes.txt").write_bytes(b"plain notes\n")
    (tmp_path / "secret.txt").write_bytes(b"do not serve")
    return ServerConfig(hostname="example.local", bind_port="1965", content_root=str(root))


def test_root_serves_default_document(config: ServerConfig) -> None:
    response = handle_request_line("gemini://example.local/", config)

    assert response.to_bytes() == b"20 text/gemini; lang=en; charset=utf-8\r\n" + GEMTEXT


def test_subdirectory_serves_its_default_document(config: ServerConfig) -> None:
    response = handle_request_line("gemini://example.local/sub/", config)

    assert response.status_code == 20
    assert response.meta == "text/gemini; lang=en; charset=utf-8"
    assert response.body == b"# Sub\n"


def test_non_gemtext_files_are_sniffed(config: ServerConfig) -> None:
    png = handle_request_line("gemini://example.local/logo.png", config)
    text = handle_request_line("gemini://example.local/notes.txt", config)

    assert png.meta == "image/png"
    assert text.meta == "text/plain; charset=utf-8"
    assert text.body == b"plain notes\n"


def test_file_bytes_round_trip(config: ServerConfig) -> None:
    response = handle_request_line("gemini://example.local/logo.png", config)

    assert response.body == (Path(config.content_root) / "logo.png").read_bytes()


def test_empty_path_redirects_to_directory_form(config: ServerConfig) -> None:
    response = handle_request_line("gemini://example.local", config)

    assert response.to_bytes() == b"31 gemini://example.local/\r\n"


def test_traversal_is_rejected_without_opening_files(
    config: ServerConfig,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    opened: list[Path] = []
    original_open = Path.open

    def tracking_open(self: Path, *args: object, **kwargs: object):  # type: ignore[no-untyped-def]
        opened.append(self)
        return original_open(self, *args, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(Path, "open", tracking_open)

    response = handle_request_line("gemini://example.local/../secret.txt", config)

    assert response.to_bytes() == b"59 Bad path\r\n"
    assert opened == []


def test_encoded_traversal_is_rejected(config: ServerConfig) -> None:
    response = handle_request_line("gemini://example.local/sub/%2e%2e/%2e%2e/secret.txt", config)

    assert response.to_bytes() == b"59 Bad path\r\n"


def test_missing_file_returns_not_found(config: ServerConfig) -> None:
    response = handle_request_line("gemini://example.local/nope.gmi", config)

    assert response.to_bytes() == b"51 File not found\r\n"


def test_directory_without_trailing_slash_is_not_found(config: ServerConfig) -> None:
    response = handle_request_line("gemini://example.local/sub", config)

    assert response.to_bytes() == b"51 File not found\r\n"


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("gemini://other.host/", b"53 Wrong hostname\r\n"),
        ("gemini://example.local:1966/", b"53 Wrong port\r\n"),
        ("https://example.local/", b"53 URL Scheme Not Accepted\r\n"),
        ("/just/a/path", b"59 Empty hostname\r\n"),
        ("gemini://example.local:port/", b"59 Bad URL\r\n"),
    ],
)
def test_validation_failures_map_to_status_lines(
    config: ServerConfig,
    line: str,
    expected: bytes,
) -> None:
    assert handle_request_line(line, config).to_bytes() == expected


def test_identical_requests_give_identical_responses(config: ServerConfig) -> None:
    first = handle_request_line("gemini://example.local/notes.txt", config)
    second = handle_request_line("gemini://example.local/notes.txt", config)

    assert first.to_bytes() == second.to_bytes()
