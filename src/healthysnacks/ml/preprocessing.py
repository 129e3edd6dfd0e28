"""Image preprocessing pipeline.

Decodes uploaded bytes into an RGB image, fits it inside the classifier's
square input while preserving aspect ratio, center-crops it to exactly the
target size, and renders it into a 32-bit ARGB pixel buffer (one byte per
channel, row-major, top-left origin) that the classifiers consume.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

BYTES_PER_PIXEL = 4
OPAQUE_ALPHA = 255

_RESAMPLE = Image.Resampling.BICUBIC


class ImageDecodeError(ValueError):
    """Raised when uploaded bytes are not a usable image."""


class NormalizationError(Exception):
    """Base class for failures that abort a single classification attempt."""


class AllocationError(NormalizationError):
    """Raised when the pixel buffer cannot be allocated."""


class RenderError(NormalizationError):
    """Raised when the source image cannot be drawn into the buffer."""


@dataclass(frozen=True)
class TargetSize:
    """Fixed input dimensions expected by the classifier models."""

    width: int
    height: int

    @classmethod
    def square(cls, side: int) -> TargetSize:
        return cls(width=side, height=side)

    def as_tuple(self) -> tuple[int, int]:
        return (self.width, self.height)


DEFAULT_TARGET = TargetSize.square(299)


@dataclass(frozen=True)
class NormalizedBuffer:
    """An ARGB uint8 pixel buffer of shape (height, width, 4)."""

    pixels: NDArray[np.uint8]

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def bytes_per_row(self) -> int:
        return self.width * BYTES_PER_PIXEL

    def rgb(self) -> NDArray[np.uint8]:
        """Return the color channels without the leading alpha byte."""
        return self.pixels[..., 1:]

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def to_tensor(self, layout: Literal["NCHW", "NHWC"] = "NCHW", scale: float = 1.0 / 255.0) -> NDArray[np.float32]:
        """Convert to a batched float32 RGB tensor for model input.

        Args:
            layout: Tensor layout expected by the model.
            scale: Multiplier applied to each 0-255 channel value.

        Returns:
            A (1, 3, H, W) or (1, H, W, 3) float32 array.
        """
        tensor = self.rgb().astype(np.float32) * np.float32(scale)
        if layout == "NCHW":
            tensor = tensor.transpose(2, 0, 1)
        return np.ascontiguousarray(tensor[np.newaxis, ...])


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_image(image_bytes: bytes, max_pixels: int) -> Image.Image:
    """Decode raw image bytes into an upright RGB image.

    Raises:
        ImageDecodeError: If the bytes cannot be decoded or exceed max_pixels.
    """
    if not image_bytes:
        raise ImageDecodeError("Empty image upload")

    try:
        image = Image.open(io.BytesIO(image_bytes))
        width, height = image.size
        if width * height > max_pixels:
            raise ImageDecodeError(f"Image has {width * height} pixels, limit is {max_pixels}")
        image.load()
        image = ImageOps.exif_transpose(image)
        return image.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ImageDecodeError(f"Cannot decode image: {exc}") from exc


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def scale_factor(width: int, height: int, target: TargetSize) -> float:
    """Uniform factor that makes (width, height) fit inside target."""
    return min(target.width / width, target.height / height)


def scaled_size(width: int, height: int, target: TargetSize) -> tuple[int, int]:
    """Size of (width, height) after an aspect-preserving fit into target."""
    factor = scale_factor(width, height, target)
    return (max(1, round(width * factor)), max(1, round(height * factor)))


def scale_preserving_aspect_ratio(image: Image.Image, target: TargetSize) -> Image.Image:
    """Resample image so it fits inside target without cropping or distortion."""
    width, height = image.size
    if width <= 0 or height <= 0:
        raise RenderError(f"Cannot render an empty {width}x{height} image")

    size = scaled_size(width, height, target)
    if size == image.size:
        return image
    try:
        return image.resize(size, _RESAMPLE)
    except (OSError, ValueError) as exc:
        raise RenderError(f"Failed to resize image to {size}: {exc}") from exc


def center_crop(image: Image.Image, target: TargetSize) -> Image.Image:
    """Scale image to fill target, cropping the longer side symmetrically."""
    if image.size == target.as_tuple():
        return image
    try:
        return ImageOps.fit(image, target.as_tuple(), method=_RESAMPLE, centering=(0.5, 0.5))
    except (OSError, ValueError, ZeroDivisionError) as exc:
        raise RenderError(f"Failed to crop image to {target.as_tuple()}: {exc}") from exc


# ---------------------------------------------------------------------------
# Pixel buffer
# ---------------------------------------------------------------------------


def allocate_buffer(width: int, height: int) -> NDArray[np.uint8]:
    """Allocate a zeroed ARGB buffer.

    Raises:
        AllocationError: On non-positive dimensions or when memory is exhausted.
    """
    if width <= 0 or height <= 0:
        raise AllocationError(f"Invalid pixel buffer dimensions {width}x{height}")
    try:
        return np.zeros((height, width, BYTES_PER_PIXEL), dtype=np.uint8)
    except MemoryError as exc:
        raise AllocationError(f"Cannot allocate {width}x{height} pixel buffer") from exc


def to_pixel_buffer(image: Image.Image) -> NormalizedBuffer:
    """Render image into an ARGB buffer with row 0 as the top scan line."""
    width, height = image.size
    pixels = allocate_buffer(width, height)

    try:
        rgb = np.asarray(image.convert("RGB"), dtype=np.uint8)
    except (OSError, ValueError) as exc:
        raise RenderError(f"Cannot read pixel data: {exc}") from exc
    if rgb.shape != (height, width, 3):
        raise RenderError(f"Unexpected pixel data shape {rgb.shape}")

    pixels[..., 0] = OPAQUE_ALPHA
    pixels[..., 1:] = rgb
    return NormalizedBuffer(pixels=pixels)


def normalize(image: Image.Image, target: TargetSize = DEFAULT_TARGET) -> NormalizedBuffer:
    """Prepare an arbitrary image for a classifier's fixed input contract.

    The image is first fitted inside ``target`` preserving its aspect ratio,
    then center-cropped to exactly ``target`` and rendered as ARGB.

    Raises:
        AllocationError: If the target dimensions are invalid or the buffer
            cannot be allocated.
        RenderError: If the source image cannot be drawn.
    """
    if target.width <= 0 or target.height <= 0:
        raise AllocationError(f"Invalid target size {target.width}x{target.height}")

    scaled = scale_preserving_aspect_ratio(image, target)
    cropped = center_crop(scaled, target)
    buffer = to_pixel_buffer(cropped)
    logger.debug("Normalized %sx%s image via %sx%s to %sx%s", *image.size, *scaled.size, buffer.width, buffer.height)
    return buffer
