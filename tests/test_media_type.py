import logging

import pytest

from openapi_request_validator.content_type import ContentTypeError
from openapi_request_validator.media_type import get_schema_for_media_type


def body(*keys):
    return {"content": {key: {"schema": {}} for key in keys}}


class TestGetSchemaForMediaType:
    def test_exact_match_beats_wildcard(self):
        assert get_schema_for_media_type("application/json", body("*/*", "application/json")) == "application/json"

    def test_subtype_wildcard(self):
        assert get_schema_for_media_type("text/x-custom", body("text/*", "*/*")) == "text/*"

    def test_subtype_wildcard_registered_after_full_wildcard(self):
        assert get_schema_for_media_type("text/x-custom", body("*/*", "text/*")) == "text/*"

    def test_full_wildcard(self):
        assert get_schema_for_media_type("image/png", body("application/json", "*/*")) == "*/*"

    def test_no_match(self):
        assert get_schema_for_media_type("application/xml", body("application/json")) is None

    def test_parameters_are_ignored(self):
        assert (
            get_schema_for_media_type("application/json; charset=utf-8", body("application/json"))
            == "application/json"
        )

    def test_key_containing_media_type(self):
        key = "application/json; charset=utf-8"
        assert get_schema_for_media_type("application/json", body(key)) == key

    def test_missing_header(self):
        assert get_schema_for_media_type(None, body("*/*")) is None

    def test_malformed_header_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING):
            result = get_schema_for_media_type("garbage", body("*/*"), logging_key="op: ")
        assert result is None
        assert "op: failed to parse content-type" in caplog.text

    def test_other_parse_errors_propagate(self):
        with pytest.raises(ContentTypeError, match="invalid parameter format"):
            get_schema_for_media_type("application/json; charset", body("application/json"))
