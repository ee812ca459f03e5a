"""Turn uploaded files into in-memory image sources."""

from __future__ import annotations

import base64
from dataclasses import dataclass

DEFAULT_MEDIA_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class ImageSource:
    """A decodable, displayable representation of one uploaded image."""

    data_url: str
    media_type: str
    filename: str | None = None


def to_data_url(data: bytes, media_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def ingest_upload(data: bytes, media_type: str | None, filename: str | None = None) -> ImageSource:
    """Wrap uploaded bytes as a ``data:`` URL.

    No size or type checks are made; undecodable content surfaces later as
    a classification failure.
    """
    media_type = media_type or DEFAULT_MEDIA_TYPE
    return ImageSource(data_url=to_data_url(data, media_type), media_type=media_type, filename=filename)
