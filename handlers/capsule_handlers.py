"""Request handlers that turn a validated request line into a Gemini response."""

from __future__ import annotations

import logging

from config import ServerConfig
from request import GeminiRequest, validate_request
from response import GeminiError, GeminiResponse
from utils import get_content_type, load_resource, resolve_request_path

logger = logging.getLogger(__name__)


def serve_capsule(request: GeminiRequest, config: ServerConfig) -> GeminiResponse:
    if request.needs_directory_redirect:
        return GeminiResponse.redirect(request.redirect_target)

    resource_path = resolve_request_path(request.path)
    logger.debug("Attempting to open file: %s", resource_path)
    body = load_resource(config.content_root, resource_path)
    return GeminiResponse.success(get_content_type(resource_path, body), body)


def handle_request_line(line: str, config: ServerConfig) -> GeminiResponse:
    """Validate a request line and answer it, mapping client errors to status lines."""
    try:
        request = validate_request(line, config)
        logger.info("Got a request to %s", line)
        return serve_capsule(request, config)
    except GeminiError as exc:
        logger.info("Rejected request %r: %s", line, exc)
        return GeminiResponse.from_error(exc)
