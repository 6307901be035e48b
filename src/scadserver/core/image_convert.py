"""PNG re-encoding into WebP and AVIF.

openscad only writes PNG rasters, so the ``webp`` and ``avif`` export formats
render a PNG first and pass it through one of the converters below.  The
conversion is a pure codec transform: dimensions were fixed at render time
and nothing is resized or cropped here.

Both converters use Pillow.  AVIF encoding requires a Pillow build with
libavif (bundled in the official wheels since Pillow 11.3).
"""

from __future__ import annotations

import io
import logging

from PIL import Image, UnidentifiedImageError

from scadserver.core.errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

DEFAULT_WEBP_QUALITY = 80
DEFAULT_AVIF_QUALITY = 75

# Modes the WebP and AVIF encoders accept directly.
_ENCODABLE_MODES = ("RGB", "RGBA")


def _decode_png(png_data: bytes) -> Image.Image:
    """Decode *png_data* into a fully loaded Pillow image.

    Raises:
        DecodeError: If the bytes are not a readable PNG.
    """
    try:
        image = Image.open(io.BytesIO(png_data), formats=["PNG"])
        image.load()
    # Pillow reports broken PNG chunks as SyntaxError and oversized images
    # as DecompressionBombError, neither of which is an OSError.
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        SyntaxError,
        EOFError,
    ) as exc:
        raise DecodeError(f"failed to decode PNG: {exc}") from exc

    if image.mode not in _ENCODABLE_MODES:
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        image = image.convert("RGBA" if has_alpha else "RGB")
    return image


def _encode(image: Image.Image, image_format: str, **params) -> bytes:
    buffer = io.BytesIO()
    try:
        image.save(buffer, format=image_format, **params)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"failed to encode {image_format}: {exc}") from exc
    return buffer.getvalue()


def convert_png_to_webp(png_data: bytes) -> bytes:
    """Re-encode PNG bytes as lossy WebP.

    Args:
        png_data: Raw PNG file contents.

    Returns:
        WebP file contents (a ``RIFF``/``WEBP`` container).

    Raises:
        DecodeError: If *png_data* is not a valid PNG.
        EncodeError: If the WebP encoder fails.
    """
    image = _decode_png(png_data)
    webp_data = _encode(image, "WEBP", quality=DEFAULT_WEBP_QUALITY)
    logger.info("PNG (%d bytes) -> WebP (%d bytes)", len(png_data), len(webp_data))
    return webp_data


def convert_png_to_avif(png_data: bytes) -> bytes:
    """Re-encode PNG bytes as AVIF.

    Args:
        png_data: Raw PNG file contents.

    Returns:
        AVIF file contents (an ISO-BMFF file starting with an ``ftyp`` box).

    Raises:
        DecodeError: If *png_data* is not a valid PNG.
        EncodeError: If the AVIF encoder is unavailable or fails.
    """
    image = _decode_png(png_data)
    avif_data = _encode(image, "AVIF", quality=DEFAULT_AVIF_QUALITY)
    logger.info("PNG (%d bytes) -> AVIF (%d bytes)", len(png_data), len(avif_data))
    return avif_data
