from __future__ import annotations

import base64
import binascii
import re

DEFAULT_MIME_TYPE = "image/jpeg"
_DATA_URL = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,")


def is_remote(image: str) -> bool:
    return image.startswith(("http://", "https://"))


def to_data_url(data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def split_data_url(image: str) -> tuple[str, str]:
    """Return ``(mime_type, base64_payload)``; bare base64 is taken as JPEG."""
    match = _DATA_URL.match(image)
    if match is None:
        return DEFAULT_MIME_TYPE, image.strip()
    return match.group(1), image[match.end():]


def decode_image(image: str) -> tuple[str, bytes]:
    mime_type, payload = split_data_url(image)
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Source image is not valid base64 data") from exc


def as_image_url(image: str) -> str:
    """Form accepted by OpenAI-style ``image_url`` content parts."""
    if image.startswith("data:") or is_remote(image):
        return image
    return f"data:{DEFAULT_MIME_TYPE};base64,{image}"
