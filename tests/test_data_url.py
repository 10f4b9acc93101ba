"""Tests for wound image data URL validation."""

import base64

import pytest

from app.core.errors import ValidationAppError
from app.utils.data_url import parse_image_data_url

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
GIF = b"GIF89a" + b"\x00" * 16
WEBP = b"RIFF\x00\x00\x00\x00WEBPVP8 " + b"\x00" * 8


def _data_url(mime: str, payload: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode()}"


class TestParseImageDataUrl:
    """Test accepted images."""

    @pytest.mark.parametrize(
        "mime, payload",
        [
            ("image/jpeg", JPEG),
            ("image/png", PNG),
            ("image/gif", GIF),
            ("image/webp", WEBP),
        ],
    )
    def test_valid_images(self, mime, payload) -> None:
        image = parse_image_data_url(_data_url(mime, payload), max_bytes=1024)

        assert image.mime_type == mime
        assert image.data == payload
        assert image.size_bytes == len(payload)

    def test_mime_type_is_case_insensitive(self) -> None:
        image = parse_image_data_url(_data_url("IMAGE/PNG", PNG), max_bytes=1024)
        assert image.mime_type == "image/png"

    def test_surrounding_whitespace_is_ignored(self) -> None:
        image = parse_image_data_url("  " + _data_url("image/png", PNG) + "\n", max_bytes=1024)
        assert image.data == PNG


class TestRejectedImages:
    """Test each rejection path and its error code."""

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "not a data url",
            "data:image/png,iVBORw0KGgo=",
            "https://example.com/wound.png",
        ],
    )
    def test_malformed_url(self, value) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            parse_image_data_url(value, max_bytes=1024)
        assert exc_info.value.code == "invalid_image_format"

    def test_unsupported_mime_type(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            parse_image_data_url(_data_url("application/pdf", b"%PDF-1.7"), max_bytes=1024)
        assert exc_info.value.code == "unsupported_image_type"
        assert "image/png" in exc_info.value.details["hint"]

    def test_invalid_base64(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            parse_image_data_url("data:image/png;base64,@@@not-base64@@@", max_bytes=1024)
        assert exc_info.value.code == "invalid_image_format"

    def test_empty_payload(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            parse_image_data_url("data:image/png;base64,", max_bytes=1024)
        assert exc_info.value.code == "invalid_image_format"

    def test_too_large(self) -> None:
        payload = PNG + b"\x00" * 200

        with pytest.raises(ValidationAppError) as exc_info:
            parse_image_data_url(_data_url("image/png", payload), max_bytes=100)
        assert exc_info.value.code == "image_too_large"
        assert exc_info.value.details["max_bytes"] == 100

    def test_exact_limit_is_accepted(self) -> None:
        payload = PNG + b"\x00" * (100 - len(PNG))

        image = parse_image_data_url(_data_url("image/png", payload), max_bytes=100)

        assert image.size_bytes == 100

    @pytest.mark.parametrize(
        "mime, payload",
        [
            ("image/png", JPEG),
            ("image/jpeg", b"<html>hello</html>"),
            ("image/webp", b"RIFF\x00\x00\x00\x00AVI LIST"),
        ],
    )
    def test_signature_mismatch(self, mime, payload) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            parse_image_data_url(_data_url(mime, payload), max_bytes=1024)
        assert exc_info.value.code == "image_signature_mismatch"
