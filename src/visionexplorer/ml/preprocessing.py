"""Image preprocessing: data URL decoding and MobileNet input preparation."""

from __future__ import annotations

import base64
import binascii
import io
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

# Matches the HuggingFace MobileNetV2 image processor.
RESIZE_SHORTEST_EDGE = 256
CROP_SIZE = 224
NORMALIZE_MEAN = 0.5
NORMALIZE_STD = 0.5


class ImageDecodeError(ValueError):
    """Raised when an image source cannot be decoded."""


def decode_data_url(data_url: str) -> NDArray[np.uint8]:
    """Decode a base64 ``data:`` URL into an RGB uint8 numpy array.

    EXIF orientation is applied so the array matches what the preview shows.

    Raises:
        ImageDecodeError: If the URL is malformed or the payload is not an image.
    """
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ImageDecodeError("Not a base64 data URL")

    try:
        raw = base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ImageDecodeError(f"Invalid base64 payload: {exc}") from exc

    return decode_image(raw)


def decode_image(image_bytes: bytes) -> NDArray[np.uint8]:
    """Decode raw image bytes (any Pillow-supported format) to HxWx3 RGB."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            rgb = ImageOps.exif_transpose(img).convert("RGB")
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ImageDecodeError(f"Cannot decode image: {exc}") from exc
    return np.asarray(rgb, dtype=np.uint8)


def preprocess_for_classification(image: NDArray[np.uint8], size: int = CROP_SIZE) -> NDArray[np.float32]:
    """Resize, centre-crop and normalize an image for a MobileNet model.

    Args:
        image: HxWx3 RGB uint8 array.
        size: Side of the square model input.

    Returns:
        1x3xSxS float32 tensor scaled to [-1, 1].
    """
    img = Image.fromarray(image)
    width, height = img.size
    shortest = round(size * RESIZE_SHORTEST_EDGE / CROP_SIZE)
    scale = shortest / min(width, height)

    # Crop box in source pixels; only the SxS output is ever allocated.
    side = size / scale
    left = (width - side) / 2
    top = (height - side) / 2
    cropped = img.resize(
        (size, size),
        Image.Resampling.BILINEAR,
        box=(left, top, left + side, top + side),
    )

    arr = np.asarray(cropped, dtype=np.float32) / 255.0
    arr = (arr - NORMALIZE_MEAN) / NORMALIZE_STD
    return arr.transpose(2, 0, 1)[np.newaxis, ...].astype(np.float32)
