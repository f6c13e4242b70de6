"""Path resolution and content-type helpers for serving capsule files."""

from __future__ import annotations

import os
import posixpath
from pathlib import Path

from config import DEFAULT_DOCUMENT, GEMTEXT_EXTENSION, GEMTEXT_META
from request import GeminiRequestError
from response import STATUS_BAD_REQUEST, STATUS_NOT_FOUND, GeminiError
from sniff import detect_content_type


class BadPathError(GeminiRequestError):
    meta = "Bad path"


class ResourceError(GeminiError):
    """Raised when a validated path cannot be turned into a response body."""


class ResourceNotFoundError(ResourceError):
    status_code = STATUS_NOT_FOUND
    meta = "File not found"


class ResourceReadError(ResourceError):
    status_code = STATUS_BAD_REQUEST
    meta = "File read error"


def normalize_request_path(request_path: str) -> str:
    """Ensure a leading slash and map directory references to the default document."""
    if not request_path.startswith("/"):
        request_path = "/" + request_path
    if request_path.endswith("/"):
        request_path += DEFAULT_DOCUMENT
    return request_path


def canonicalize_path(path: str) -> str:
    cleaned = posixpath.normpath(path)
    # normpath keeps a leading double slash; a URL path has no such meaning.
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def check_canonical(path: str) -> str:
    """Return ``path`` if canonicalization leaves it unchanged, else raise BadPathError."""
    canonical = canonicalize_path(path)
    if canonical != path:
        raise BadPathError(f"Clean and original paths don't match: {canonical} != {path}")
    if os.sep != "/" and os.sep in canonical:
        raise BadPathError(f"Path contains a native separator: {path}")
    return canonical


def resolve_request_path(request_path: str) -> str:
    return check_canonical(normalize_request_path(request_path))


def load_resource(content_root: str | Path, resource_path: str) -> bytes:
    """Read the whole file at ``resource_path`` relative to ``content_root``."""
    file_path = Path(content_root) / resource_path.lstrip("/")
    try:
        file_obj = file_path.open("rb")
    except (OSError, ValueError) as exc:
        raise ResourceNotFoundError(f"Unable to open {file_path}: {exc}") from exc

    with file_obj:
        try:
            return file_obj.read()
        except OSError as exc:
            raise ResourceReadError(f"Unable to read {file_path}: {exc}") from exc


def get_content_type(resource_path: str, body: bytes) -> str:
    if resource_path.endswith(GEMTEXT_EXTENSION):
        return GEMTEXT_META
    return detect_content_type(body)
