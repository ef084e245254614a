"""矢量图（SVG）栅格化。"""

from __future__ import annotations

import io
import logging

from PIL import Image, UnidentifiedImageError

from avif_optimizer.core.exceptions import DecodeError

_RESAMPLING = getattr(Image, "Resampling", Image)

LOGGER = logging.getLogger(__name__)


def rasterize_svg(markup: bytes, size: int = 2000) -> Image.Image:
    """将 SVG 标记渲染为 ``size`` x ``size`` 的 RGBA 图像。

    画布始终为正方形，不按宽高比留边；透明背景保持透明，
    由后续归一化阶段决定是否铺底色。返回值为新的 Image 对象，调用者负责关闭。
    """

    if size <= 0:
        raise DecodeError(f"无效的栅格化尺寸: {size}")
    if not markup or not markup.strip():
        raise DecodeError("SVG 内容为空")

    import cairosvg

    try:
        # 只固定宽度，避免 cairosvg 按 viewBox 等比留边；高度差由下方拉伸补齐
        png_bytes = cairosvg.svg2png(bytestring=markup, output_width=size)
    except Exception as exc:  # noqa: BLE001
        LOGGER.debug("SVG 渲染失败: %s", exc)
        raise DecodeError(f"无法渲染 SVG: {exc}") from exc

    try:
        with Image.open(io.BytesIO(png_bytes)) as rendered:
            rendered.load()
            canvas = rendered.convert("RGBA")
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeError("SVG 渲染结果无法解析") from exc

    if canvas.size != (size, size):
        stretched = canvas.resize((size, size), _RESAMPLING.LANCZOS)
        canvas.close()
        canvas = stretched

    LOGGER.debug("SVG 已栅格化为 %dx%d", size, size)
    return canvas
