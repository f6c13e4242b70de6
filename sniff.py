"""Content-type detection from leading bytes.

Follows the signature table of the WHATWG MIME sniffing standard: markup
prefixes are matched case-insensitively after leading whitespace, binary
formats by exact (optionally masked) byte patterns. Anything unmatched is
plain text unless it contains binary control bytes.
"""

from __future__ import annotations

from dataclasses import dataclass

from config import SNIFF_LENGTH

TEXT_PLAIN = "text/plain; charset=utf-8"
OCTET_STREAM = "application/octet-stream"

_WHITESPACE = b"\t\n\x0c\r "
_TAG_TERMINATORS = b" >"
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)

_HTML_TAGS = (
    b"<!DOCTYPE HTML",
    b"<HTML",
    b"<HEAD",
    b"<SCRIPT",
    b"<IFRAME",
    b"<H1",
    b"<DIV",
    b"<FONT",
    b"<TABLE",
    b"<A",
    b"<STYLE",
    b"<TITLE",
    b"<B",
    b"<BODY",
    b"<BR",
    b"<P",
    b"<!--",
)


@dataclass(frozen=True, slots=True)
class MaskedSignature:
    pattern: bytes
    mask: bytes
    content_type: str
    skip_whitespace: bool = False

    def matches(self, data: bytes) -> bool:
        if self.skip_whitespace:
            data = data.lstrip(_WHITESPACE)
        if len(data) < len(self.pattern):
            return False
        return all(
            data[index] & mask_byte == pattern_byte
            for index, (pattern_byte, mask_byte) in enumerate(zip(self.pattern, self.mask))
        )


_EXACT_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"%PDF-", "application/pdf"),
    (b"%!PS-Adobe-", "application/postscript"),
    (b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xfe", "text/plain; charset=utf-16le"),
    (b"\xef\xbb\xbf", TEXT_PLAIN),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"\x00\x00\x02\x00", "image/x-icon"),
    (b"BM", "image/bmp"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x00\x00\x00\x0cjP  \r\n\x87\n", "image/jp2"),
    (b".snd", "audio/basic"),
    (b"ID3", "audio/mpeg"),
    (b"OggS\x00", "application/ogg"),
    (b"MThd\x00\x00\x00\x06", "audio/midi"),
    (b"\x1a\x45\xdf\xa3", "video/webm"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"OTTO", "font/otf"),
    (b"\x00\x01\x00\x00", "font/ttf"),
    (b"ttcf", "font/collection"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"PK\x03\x04", "application/zip"),
    (b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    (b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    (b"7z\xbc\xaf\x27\x1c", "application/x-7z-compressed"),
    (b"\x00asm", "application/wasm"),
)

_XML_SIGNATURE = MaskedSignature(
    b"<?xml", b"\xff" * 5, "text/xml; charset=utf-8", skip_whitespace=True
)

_RIFF_SIGNATURES: tuple[MaskedSignature, ...] = (
    MaskedSignature(
        b"FORM\x00\x00\x00\x00AIFF",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        "audio/aiff",
    ),
    MaskedSignature(
        b"RIFF\x00\x00\x00\x00WEBPVP",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff\xff\xff",
        "image/webp",
    ),
    MaskedSignature(
        b"RIFF\x00\x00\x00\x00WAVE",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        "audio/wave",
    ),
    MaskedSignature(
        b"RIFF\x00\x00\x00\x00AVI ",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        "video/avi",
    ),
)


def _matches_html(data: bytes) -> bool:
    trimmed = data.lstrip(_WHITESPACE)
    for tag in _HTML_TAGS:
        if len(trimmed) <= len(tag):
            continue
        if trimmed[: len(tag)].upper() == tag and trimmed[len(tag)] in _TAG_TERMINATORS:
            return True
    return False


def _matches_mp4(data: bytes) -> bool:
    if len(data) < 12:
        return False
    box_size = int.from_bytes(data[:4], "big")
    if box_size < 12 or box_size % 4 != 0 or len(data) < box_size:
        return False
    if data[4:8] != b"ftyp":
        return False
    for start in range(8, box_size, 4):
        if start == 12:
            continue
        if data[start : start + 3] == b"mp4":
            return True
    return False


def detect_content_type(data: bytes) -> str:
    """Return a media type for ``data`` based on its first bytes."""
    head = data[:SNIFF_LENGTH]

    if _matches_html(head):
        return "text/html; charset=utf-8"
    if _XML_SIGNATURE.matches(head):
        return _XML_SIGNATURE.content_type
    for prefix, content_type in _EXACT_SIGNATURES:
        if head.startswith(prefix):
            return content_type
    for signature in _RIFF_SIGNATURES:
        if signature.matches(head):
            return signature.content_type
    if _matches_mp4(head):
        return "video/mp4"

    if any(byte in _BINARY_BYTES for byte in head):
        return OCTET_STREAM
    return TEXT_PLAIN
