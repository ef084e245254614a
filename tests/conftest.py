"""测试共用的假编码器与图片构造工具。"""

from __future__ import annotations

import io
from typing import Dict, List, Optional, Tuple

import pytest
from PIL import Image

KIB = 1024


class FakeEncoder:
    """按质量返回固定大小字节的确定性编码器，并记录每次调用。"""

    def __init__(self, sizes: Optional[Dict[int, int]] = None, default_size: int = 10 * KIB) -> None:
        self.sizes = sizes or {}
        self.default_size = default_size
        self.calls: List[Tuple[int, int, Tuple[int, int], str]] = []

    def encode(self, image: Image.Image, quality: int, *, speed: int = 6) -> bytes:
        self.calls.append((quality, speed, image.size, image.mode))
        size = self.sizes.get(quality, self.default_size)
        return bytes([quality % 256]) * size

    @property
    def qualities(self) -> List[int]:
        return [call[0] for call in self.calls]


def image_bytes(image: Image.Image, fmt: str = "PNG", **params: object) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **params)
    return buffer.getvalue()


def cairo_available() -> bool:
    try:
        import cairosvg  # noqa: F401
    except (ImportError, OSError):
        return False
    return True


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()
