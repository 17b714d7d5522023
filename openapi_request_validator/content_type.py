from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any


_TOKEN = r"[!#$%&'*+.^_`|~0-9A-Za-z-]+"
TYPE_REGEXP = re.compile(rf"^{_TOKEN}/{_TOKEN}$")
PARAM_REGEXP = re.compile(
    rf"; *({_TOKEN}) *= *"
    r'("(?:[\u000b\u0020\u0021\u0023-\u005b\u005d-\u007e\u0080-\u00ff]|\\[\u000b\u0020-\u00ff])*"'
    rf"|{_TOKEN}) *"
)
QESC_REGEXP = re.compile(r"\\([\u000b\u0020-\u00ff])")


class ContentTypeError(TypeError):
    pass


@dataclass(slots=True)
class MediaType:
    type: str
    parameters: dict[str, str] = field(default_factory=dict)


def parse_media_type(header: Any) -> MediaType:
    """Parse a Content-Type header value into its media type and parameters.

    Raises ``ContentTypeError("invalid media type")`` when the type/subtype
    pair is malformed and ``ContentTypeError("invalid parameter format")``
    when the parameter list cannot be parsed.
    """
    if not header:
        raise ContentTypeError("argument string is required")
    if not isinstance(header, str):
        raise ContentTypeError("argument string is required to be a string")

    index = header.find(";")
    media_type = header[:index].strip() if index != -1 else header.strip()
    if not TYPE_REGEXP.match(media_type):
        raise ContentTypeError("invalid media type")

    parsed = MediaType(type=media_type.lower())
    if index == -1:
        return parsed

    while True:
        match = PARAM_REGEXP.match(header, index)
        if match is None:
            break
        index = match.end()
        value = match.group(2)
        if value.startswith('"'):
            value = QESC_REGEXP.sub(r"\1", value[1:-1])
        parsed.parameters[match.group(1).lower()] = value

    if index != len(header):
        raise ContentTypeError("invalid parameter format")
    return parsed
