"""AVIF 编码能力。

编码器被视为不透明的能力：输入像素缓冲区与质量参数，输出压缩字节。
控制逻辑只依赖 :class:`AvifEncoder` 协议，可替换为任意实现。
"""

from __future__ import annotations

import io
import logging
from typing import Protocol

from PIL import Image, features

from avif_optimizer.core.exceptions import EncodeError

LOGGER = logging.getLogger(__name__)


class AvifEncoder(Protocol):
    def encode(self, image: Image.Image, quality: int, *, speed: int = 6) -> bytes:
        ...


def avif_supported() -> bool:
    """当前 Pillow 是否编译了 AVIF 支持。"""

    try:
        return bool(features.check("avif"))
    except ValueError:
        return False


class PillowAvifEncoder:
    """基于 Pillow 内置 AVIF 插件的编码器。"""

    def __init__(self, subsampling: str = "4:2:0") -> None:
        self.subsampling = subsampling

    def encode(self, image: Image.Image, quality: int, *, speed: int = 6) -> bytes:
        if not avif_supported():
            raise EncodeError("当前 Pillow 未启用 AVIF 编码支持")

        buffer = io.BytesIO()
        try:
            image.save(
                buffer,
                format="AVIF",
                quality=quality,
                speed=speed,
                subsampling=self.subsampling,
            )
        except (OSError, ValueError, KeyError) as exc:
            raise EncodeError(f"AVIF 编码失败 (quality={quality}): {exc}") from exc

        data = buffer.getvalue()
        if not data:
            raise EncodeError(f"AVIF 编码结果为空 (quality={quality})")
        LOGGER.debug("AVIF 编码完成 quality=%d speed=%d size=%d", quality, speed, len(data))
        return data
