"""Image codec service.

Wraps Pillow to turn arbitrary uploaded image bytes into a normalized
in-memory `Bitmap`, and to re-encode a bitmap into the base64 JPEG payload
sent to the vision model. The transport encoding is bounded both in pixel
dimensions (longest side) and in base64 length.

Public class: `ImageCodec`

Example:
    codec = ImageCodec(max_dimension=2048)
    payload = codec.encode_for_transport(codec.decode(raw_bytes))
"""
from __future__ import annotations

import base64
import binascii
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from models.errors import CorruptImage, EncodingTooLarge, UnsupportedFormat
from models.image_models import Bitmap, EncodedPayload

LOGGER = logging.getLogger(__name__)

TRANSPORT_MEDIA_TYPE = "image/jpeg"


class ImageCodec:
    """Decode uploads into bitmaps and encode bitmaps for transport.

    Args:
        max_dimension: Maximum width and height of the transported image. Larger images are
            downsampled preserving aspect ratio.
        jpeg_quality: JPEG quality used for the transport encoding.
        max_transport_bytes: Upper bound on the base64 text length of the payload.
        background: RGB color used when flattening images with alpha.
    """

    def __init__(
        self,
        max_dimension: int = 2048,
        jpeg_quality: int = 90,
        max_transport_bytes: int = 8 * 1024 * 1024,
        background: tuple[int, int, int] = (255, 255, 255),
    ):
        if max_dimension <= 0:
            raise ValueError("max_dimension must be positive.")
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.max_transport_bytes = max_transport_bytes
        self.background = background

    def decode(self, data: bytes) -> Bitmap:
        """Decode raw image bytes into a fully loaded bitmap.

        Args:
            data: Bytes of a raster image file (JPEG, PNG, WebP, ...).

        Returns:
            A `Bitmap` in RGB, or RGBA when the source carries transparency.

        Raises:
            UnsupportedFormat: If the bytes are not a recognized raster image.
            CorruptImage: If the header parses but the pixel data is truncated or inconsistent.
        """
        if not data:
            raise UnsupportedFormat("No image data was provided.")

        try:
            src = Image.open(io.BytesIO(data))
        except UnidentifiedImageError as exc:
            raise UnsupportedFormat("The file is not a recognized image format.") from exc
        except Image.DecompressionBombError as exc:
            raise CorruptImage("The image dimensions are implausibly large.") from exc
        except (OSError, SyntaxError, ValueError) as exc:
            raise CorruptImage(f"The image header could not be read: {exc}") from exc

        source_format = src.format
        try:
            src.load()
            # Auto-orient from EXIF before the pixels are normalized
            oriented = ImageOps.exif_transpose(src)
        except (OSError, SyntaxError, ValueError, EOFError) as exc:
            raise CorruptImage(f"The image data is truncated or damaged: {exc}") from exc

        has_alpha = oriented.mode in ("RGBA", "LA", "PA") or (
            oriented.mode == "P" and "transparency" in oriented.info
        )
        normalized = oriented.convert("RGBA" if has_alpha else "RGB")
        LOGGER.debug("Decoded %s image %sx%s (%s)", source_format, normalized.width, normalized.height, src.mode)
        return Bitmap(image=normalized, source_format=source_format)

    def encode_for_transport(self, bitmap: Bitmap) -> EncodedPayload:
        """Encode a bitmap into the size-bounded base64 payload sent to the model.

        Raises:
            EncodingTooLarge: If the payload still exceeds `max_transport_bytes` after downsampling.
        """
        image = bitmap.copy_image()
        image.thumbnail((self.max_dimension, self.max_dimension), Image.LANCZOS)

        if image.mode == "RGBA":
            # Flatten alpha against the background color
            flattened = Image.new("RGB", image.size, self.background)
            flattened.paste(image, mask=image.split()[3])
            image = flattened
        elif image.mode != "RGB":
            image = image.convert("RGB")

        out_io = io.BytesIO()
        image.save(out_io, format="JPEG", quality=self.jpeg_quality, optimize=True)
        encoded = base64.b64encode(out_io.getvalue()).decode("ascii")

        if len(encoded) > self.max_transport_bytes:
            raise EncodingTooLarge(
                f"Encoded image is {len(encoded)} bytes, above the {self.max_transport_bytes} byte limit."
            )

        LOGGER.debug(
            "Encoded %sx%s bitmap as %sx%s JPEG (%s base64 bytes)",
            bitmap.width,
            bitmap.height,
            image.width,
            image.height,
            len(encoded),
        )
        return EncodedPayload(
            data=encoded,
            media_type=TRANSPORT_MEDIA_TYPE,
            width=image.width,
            height=image.height,
        )

    def decode_transport(self, payload: EncodedPayload) -> Bitmap:
        """Decode a transport payload back into a bitmap."""
        try:
            raw = base64.b64decode(payload.data.encode("ascii"), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CorruptImage("Transport payload is not valid base64.") from exc
        return self.decode(raw)
