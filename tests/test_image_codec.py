"""Tests for the image codec."""

import base64
import io

import pytest
from PIL import Image

from models.errors import CorruptImage, EncodingTooLarge, UnsupportedFormat
from services.image_codec import ImageCodec


def _noise_jpeg(size=(256, 256)) -> bytes:
    buf = io.BytesIO()
    Image.effect_noise(size, 64).convert("RGB").save(buf, format="JPEG", quality=95)
    return buf.getvalue()


class TestDecode:
    def test_decodes_jpeg_to_rgb(self, image_bytes):
        bitmap = ImageCodec().decode(image_bytes)
        assert bitmap.size == (64, 48)
        assert bitmap.mode == "RGB"
        assert bitmap.source_format == "JPEG"

    def test_keeps_alpha_for_transparent_png(self, make_image):
        data = make_image(size=(40, 30), fmt="PNG", mode="RGBA", color=(10, 20, 30, 0))
        bitmap = ImageCodec().decode(data)
        assert bitmap.mode == "RGBA"
        assert bitmap.source_format == "PNG"

    def test_normalizes_greyscale_and_palette(self, make_image):
        codec = ImageCodec()
        assert codec.decode(make_image(fmt="PNG", mode="L", color=128)).mode == "RGB"
        assert codec.decode(make_image(fmt="GIF", mode="P", color=3)).mode == "RGB"

    def test_applies_exif_orientation(self):
        exif = Image.Exif()
        exif[0x0112] = 6  # rotated 90 degrees clockwise
        buf = io.BytesIO()
        Image.new("RGB", (80, 20), (90, 90, 90)).save(buf, format="JPEG", exif=exif.tobytes())
        bitmap = ImageCodec().decode(buf.getvalue())
        assert bitmap.size == (20, 80)

    def test_empty_bytes_are_unsupported(self):
        with pytest.raises(UnsupportedFormat):
            ImageCodec().decode(b"")

    def test_non_image_bytes_are_unsupported(self):
        with pytest.raises(UnsupportedFormat):
            ImageCodec().decode(b"%PDF-1.7 definitely not a raster image")

    def test_truncated_jpeg_is_corrupt(self):
        data = _noise_jpeg()
        with pytest.raises(CorruptImage):
            ImageCodec().decode(data[: len(data) // 2])

    def test_bitmap_copy_does_not_alias(self, image_bytes):
        bitmap = ImageCodec().decode(image_bytes)
        copy = bitmap.copy_image()
        copy.putpixel((0, 0), (0, 0, 0))
        assert bitmap.image.getpixel((0, 0)) != (0, 0, 0)


class TestEncodeForTransport:
    def test_downsamples_preserving_aspect_ratio(self, make_image):
        codec = ImageCodec(max_dimension=512)
        payload = codec.encode_for_transport(codec.decode(make_image(size=(2000, 1000))))
        assert (payload.width, payload.height) == (512, 256)
        assert payload.media_type == "image/jpeg"
        assert payload.data_url.startswith("data:image/jpeg;base64,")

    def test_small_images_are_not_upscaled(self, image_bytes):
        codec = ImageCodec(max_dimension=512)
        payload = codec.encode_for_transport(codec.decode(image_bytes))
        assert (payload.width, payload.height) == (64, 48)

    def test_payload_is_plain_base64(self, image_bytes):
        codec = ImageCodec()
        payload = codec.encode_for_transport(codec.decode(image_bytes))
        raw = base64.b64decode(payload.data, validate=True)
        assert raw[:2] == b"\xff\xd8"
        assert payload.byte_size == len(payload.data)

    @pytest.mark.parametrize("size", [(64, 48), (700, 300), (301, 999)])
    def test_transport_payload_decodes_to_same_dimensions(self, make_image, size):
        codec = ImageCodec(max_dimension=512)
        original = codec.decode(make_image(size=size, fmt="PNG"))
        payload = codec.encode_for_transport(original)
        restored = codec.decode_transport(payload)
        assert restored.size == (payload.width, payload.height)
        scale = min(1.0, 512 / max(size))
        assert abs(restored.width - size[0] * scale) <= 1
        assert abs(restored.height - size[1] * scale) <= 1

    def test_alpha_is_flattened(self, make_image):
        codec = ImageCodec()
        bitmap = codec.decode(make_image(size=(20, 20), fmt="PNG", mode="RGBA", color=(0, 0, 0, 0)))
        restored = codec.decode_transport(codec.encode_for_transport(bitmap))
        assert restored.mode == "RGB"
        r, g, b = restored.image.getpixel((10, 10))
        assert min(r, g, b) > 240

    def test_oversized_payload_is_reported(self):
        codec = ImageCodec(max_transport_bytes=100)
        bitmap = codec.decode(_noise_jpeg(size=(128, 128)))
        with pytest.raises(EncodingTooLarge):
            codec.encode_for_transport(bitmap)
