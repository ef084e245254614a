"""图片解码、尺寸归一化与透明度处理。"""

from __future__ import annotations

import io
import logging
from typing import Optional

import numpy as np
from PIL import Image, ImageColor, ImageOps, UnidentifiedImageError

from avif_optimizer.core.config import NormalizeConfig
from avif_optimizer.core.exceptions import DecodeError
from avif_optimizer.core.models import NormalizedImage, SourceAsset
from avif_optimizer.processing.rasterizer import rasterize_svg

_RESAMPLING = getattr(Image, "Resampling", Image)
_ALPHA_MODES = {"RGBA", "LA", "PA", "P", "RGBa", "La"}

LOGGER = logging.getLogger(__name__)


def decode_bitmap(data: bytes) -> Image.Image:
    """解码位图字节并执行 EXIF 旋转。

    返回值为新的 Image 对象，调用者负责关闭。
    """

    if not data:
        raise DecodeError("图像数据为空")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            transposed = ImageOps.exif_transpose(img)
            return transposed.copy()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        LOGGER.debug("无法识别图像数据: %s", exc)
        raise DecodeError(f"无法解析图像: {exc}") from exc


def compute_target_size(size: tuple[int, int], max_dimension: int) -> tuple[int, int]:
    """按最长边缩放到 ``max_dimension``，不放大，向下取整。"""

    width, height = size
    if width <= 0 or height <= 0:
        raise DecodeError(f"图像尺寸无效: {width}x{height}")

    longest = max(width, height)
    target_longest = min(max_dimension, longest)
    if target_longest == longest:
        return width, height

    if width >= height:
        return target_longest, max(1, height * target_longest // width)
    return max(1, width * target_longest // height), target_longest


def detect_alpha(image: Image.Image) -> bool:
    """任一像素的 alpha 小于 255 即视为含透明。"""

    if image.mode != "RGBA":
        return False
    alpha = np.asarray(image.getchannel("A"))
    return bool(alpha.size and alpha.min() < 255)


def normalize_image(
    image: Image.Image,
    config: NormalizeConfig,
    *,
    flatten: Optional[bool] = None,
) -> NormalizedImage:
    """缩放到边界框内并检测透明度；不含透明时按需铺白底生成不透明缓冲区。"""

    rgba = _to_rgba(image)
    target = compute_target_size(rgba.size, config.max_dimension)
    if target != rgba.size:
        resized = rgba.resize(target, _RESAMPLING.LANCZOS)
        if rgba is not image:
            rgba.close()
        rgba = resized

    has_alpha = detect_alpha(rgba)
    should_flatten = config.flatten_opaque if flatten is None else flatten

    if has_alpha or not should_flatten:
        return NormalizedImage(image=rgba, has_alpha=has_alpha)

    background = Image.new("RGB", rgba.size, ImageColor.getrgb(config.background_color)[:3])
    background.paste(rgba, mask=rgba.getchannel("A"))
    if rgba is not image:
        rgba.close()
    return NormalizedImage(image=background, has_alpha=False)


def normalize_asset(asset: SourceAsset, config: NormalizeConfig) -> NormalizedImage:
    """矢量图先栅格化为固定正方形画布，位图直接解码，再统一归一化。"""

    if asset.is_vector:
        LOGGER.debug("栅格化矢量图: %s", asset.name)
        source = rasterize_svg(asset.data, config.vector_canvas_size)
    else:
        source = decode_bitmap(asset.data)

    try:
        normalized = normalize_image(source, config)
    except Exception:
        source.close()
        raise

    if normalized.image is not source:
        source.close()
    return normalized


def _to_rgba(image: Image.Image) -> Image.Image:
    """将任意模式图像转换为 RGBA。"""

    if image.mode == "RGBA":
        return image
    try:
        if image.mode in _ALPHA_MODES or "transparency" in image.info:
            return image.convert("RGBA")
        # CMYK、L、I 等模式先转 RGB 再补 alpha
        return image.convert("RGB").convert("RGBA")
    except ValueError as exc:
        raise DecodeError(f"不支持的像素模式: {image.mode}") from exc
