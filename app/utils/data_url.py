"""Validation of wound photos sent as base64 data URLs.

Checks the declared MIME type, the decoded size and the file signature
(magic numbers) so a renamed non-image payload is rejected before it is
forwarded to the model.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass

from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)

IMAGE_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/gif": (b"GIF87a", b"GIF89a"),
    "image/webp": (b"RIFF",),
}


@dataclass(frozen=True)
class DataUrlImage:
    mime_type: str
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def _has_valid_signature(data: bytes, mime_type: str) -> bool:
    signatures = IMAGE_SIGNATURES.get(mime_type, ())
    if mime_type == "image/webp":
        return data.startswith(b"RIFF") and data[8:12] == b"WEBP"
    return any(data.startswith(sig) for sig in signatures)


def parse_image_data_url(data_url: str, *, max_bytes: int) -> DataUrlImage:
    """Parse and validate an image data URL.

    Args:
        data_url: ``data:<mime>;base64,<data>`` string.
        max_bytes: Maximum decoded image size.

    Returns:
        DataUrlImage with the MIME type and decoded bytes.

    Raises:
        ValidationAppError: If the URL is malformed, the MIME type is not a
            supported image type, the payload is not valid base64, too large,
            or does not carry the signature of its declared type.
    """
    match = _DATA_URL_RE.match(data_url.strip()) if data_url else None
    if match is None:
        raise ValidationAppError(
            code="invalid_image_format",
            message="Invalid image format. Expected a base64 data URL.",
        )

    mime_type = match.group("mime").lower()
    if mime_type not in IMAGE_SIGNATURES:
        raise ValidationAppError(
            code="unsupported_image_type",
            message=f"Unsupported image type: {mime_type}.",
            details={"hint": "Supported types: " + ", ".join(sorted(IMAGE_SIGNATURES))},
        )

    # base64 length is ~4/3 of the payload; reject obviously oversized input before decoding
    encoded = match.group("data")
    if len(encoded) * 3 // 4 > max_bytes + 3:
        raise ValidationAppError(
            code="image_too_large",
            message="Image is too large.",
            details={"max_bytes": max_bytes},
        )

    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationAppError(
            code="invalid_image_format",
            message="Invalid image format. The payload is not valid base64.",
        ) from exc

    if not data:
        raise ValidationAppError(
            code="invalid_image_format",
            message="Invalid image format. The image is empty.",
        )

    if len(data) > max_bytes:
        raise ValidationAppError(
            code="image_too_large",
            message="Image is too large.",
            details={"max_bytes": max_bytes, "actual_value": len(data)},
        )

    if not _has_valid_signature(data, mime_type):
        logger.warning(
            "image_signature.invalid",
            extra={"mime_type": mime_type, "actual_prefix": data[:12]},
        )
        raise ValidationAppError(
            code="image_signature_mismatch",
            message="Image content does not match its declared type.",
        )

    return DataUrlImage(mime_type=mime_type, data=data)
