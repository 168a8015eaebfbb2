from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

from PIL import Image


@dataclass(frozen=True)
class Bitmap:
    """Decoded pixel grid held in memory, independent of the source file encoding.

    Attributes:
        image: Fully loaded Pillow image in RGB or RGBA mode. Treat as read-only;
            use `copy_image` when a mutable copy is required.
        source_format: Format Pillow detected for the original bytes (e.g. "JPEG").
    """

    image: Image.Image = field(repr=False, compare=False)
    source_format: Optional[str] = None

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def mode(self) -> str:
        return self.image.mode

    def copy_image(self) -> Image.Image:
        return self.image.copy()


@dataclass(frozen=True)
class EncodedPayload:
    """Base64 transport encoding of a bitmap."""

    data: str = field(repr=False)
    media_type: str
    width: int
    height: int

    @property
    def byte_size(self) -> int:
        return len(self.data)

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"
