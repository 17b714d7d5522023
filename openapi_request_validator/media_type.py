from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from openapi_request_validator.content_type import ContentTypeError, parse_media_type


logger = logging.getLogger(__name__)

SUBTYPE_WILDCARD_POINTS = 2
WILDCARD_MATCH_POINTS = 1


def get_schema_for_media_type(
    content_type_header: str | None,
    request_body: Mapping[str, Any],
    log: logging.Logger | logging.LoggerAdapter | None = None,
    logging_key: str = "",
) -> str | None:
    """Pick the requestBody content key that best matches a Content-Type header.

    A key containing the parsed media type wins outright. Otherwise
    ``type/*`` beats ``*/*``, and the first key registered wins a tie.
    """
    if not content_type_header:
        return None

    log = log or logger
    try:
        content_type = parse_media_type(content_type_header).type
    except ContentTypeError as exc:
        log.warning("%sfailed to parse content-type %r: %s", logging_key, content_type_header, exc)
        if str(exc) == "invalid media type":
            return None
        raise

    content = request_body.get("content") or {}
    type_name = content_type.split("/")[0]
    match: str | None = None
    match_points = 0

    for media_type_key in content:
        if content_type in media_type_key:
            return media_type_key
        if media_type_key == "*/*" and WILDCARD_MATCH_POINTS > match_points:
            match = media_type_key
            match_points = WILDCARD_MATCH_POINTS

        key_parts = media_type_key.split("/")
        if len(key_parts) < 2 or key_parts[1] != "*":
            continue
        if key_parts[0] == type_name and SUBTYPE_WILDCARD_POINTS > match_points:
            match = media_type_key
            match_points = SUBTYPE_WILDCARD_POINTS

    return match
