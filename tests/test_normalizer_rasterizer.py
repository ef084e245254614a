"""归一化与矢量栅格化：缩放边界、透明度检测与铺底。"""

from __future__ import annotations

import pytest
from PIL import Image

from avif_optimizer.core.config import NormalizeConfig
from avif_optimizer.core.exceptions import DecodeError
from avif_optimizer.core.models import SVG_MEDIA_TYPE, SourceAsset
from avif_optimizer.processing.normalizer import (
    compute_target_size,
    decode_bitmap,
    detect_alpha,
    normalize_asset,
    normalize_image,
)
from avif_optimizer.processing.rasterizer import rasterize_svg

from conftest import cairo_available, image_bytes

requires_cairo = pytest.mark.skipif(not cairo_available(), reason="当前环境缺少 cairo 库")

WIDE_SVG = b"""<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" width="400" height="100" viewBox="0 0 400 100">
  <rect x="-50" y="-50" width="600" height="300" fill="#3366cc"/>
  <circle cx="380" cy="90" r="80" fill="#cc3333"/>
</svg>
"""


@pytest.mark.parametrize(
    ("size", "bound", "expected"),
    [
        ((4000, 1000), 2000, (2000, 500)),
        ((1000, 4000), 2000, (500, 2000)),
        ((300, 200), 2000, (300, 200)),
        ((1000, 3001), 2000, (666, 2000)),
        ((2000, 2000), 2000, (2000, 2000)),
        ((5000, 3), 100, (100, 1)),
    ],
)
def test_compute_target_size(size: tuple[int, int], bound: int, expected: tuple[int, int]) -> None:
    assert compute_target_size(size, bound) == expected


def test_normalize_never_upscales() -> None:
    image = Image.new("RGB", (120, 80), "blue")
    normalized = normalize_image(image, NormalizeConfig(max_dimension=2000))

    assert (normalized.width, normalized.height) == (120, 80)


def test_normalize_downscales_longest_side() -> None:
    image = Image.new("RGB", (300, 150), "blue")
    normalized = normalize_image(image, NormalizeConfig(max_dimension=100))

    assert (normalized.width, normalized.height) == (100, 50)


def test_opaque_image_is_flattened_to_rgb() -> None:
    image = Image.new("RGBA", (10, 10), (10, 20, 30, 255))
    normalized = normalize_image(image, NormalizeConfig())

    assert normalized.has_alpha is False
    assert normalized.image.mode == "RGB"
    assert normalized.image.getpixel((5, 5)) == (10, 20, 30)


def test_single_translucent_pixel_marks_alpha() -> None:
    image = Image.new("RGBA", (10, 10), (10, 20, 30, 255))
    image.putpixel((9, 9), (10, 20, 30, 254))
    normalized = normalize_image(image, NormalizeConfig())

    assert normalized.has_alpha is True
    # 含透明时不铺底色
    assert normalized.image.mode == "RGBA"
    assert normalized.image.getpixel((9, 9))[3] == 254


def test_flattening_can_be_disabled() -> None:
    image = Image.new("RGB", (10, 10), "red")
    normalized = normalize_image(image, NormalizeConfig(flatten_opaque=False))

    assert normalized.has_alpha is False
    assert normalized.image.mode == "RGBA"


def test_palette_transparency_detected() -> None:
    image = Image.new("P", (8, 8), 0)
    image.putpalette([255, 255, 255, 0, 0, 0] + [0] * (256 * 3 - 6))
    image.info["transparency"] = 0
    data = image_bytes(image)

    normalized = normalize_image(decode_bitmap(data), NormalizeConfig())

    assert normalized.has_alpha is True


def test_detect_alpha_on_rgb_is_false() -> None:
    assert detect_alpha(Image.new("RGB", (4, 4))) is False


def test_decode_bitmap_rejects_garbage() -> None:
    with pytest.raises(DecodeError):
        decode_bitmap(b"not an image")


def test_decode_bitmap_rejects_empty() -> None:
    with pytest.raises(DecodeError):
        decode_bitmap(b"")


def test_exif_orientation_is_corrected() -> None:
    if not hasattr(Image, "Exif"):
        pytest.skip("当前 Pillow 版本不支持写入 EXIF 数据")

    image = Image.new("RGB", (80, 40), "red")
    exif = Image.Exif()
    exif[274] = 6  # 顺时针 90 度
    data = image_bytes(image, "JPEG", exif=exif.tobytes())

    decoded = decode_bitmap(data)
    assert decoded.size == (40, 80)


def test_cmyk_image_converts_to_rgb() -> None:
    data = image_bytes(Image.new("CMYK", (50, 50), (0, 128, 255, 0)), "JPEG")
    asset = SourceAsset(data=data, media_type="image/jpeg", name="cmyk.jpg")

    normalized = normalize_asset(asset, NormalizeConfig())

    assert normalized.image.mode == "RGB"
    assert normalized.has_alpha is False


def test_normalize_asset_bitmap_bounds() -> None:
    data = image_bytes(Image.new("RGB", (3000, 1500), "white"))
    asset = SourceAsset(data=data, media_type="image/png", name="wide.png")

    normalized = normalize_asset(asset, NormalizeConfig())

    assert (normalized.width, normalized.height) == (2000, 1000)


@requires_cairo
def test_rasterize_svg_produces_square_canvas() -> None:
    canvas = rasterize_svg(WIDE_SVG, 2000)

    assert canvas.size == (2000, 2000)
    assert canvas.mode == "RGBA"
    # 宽图被拉伸铺满，上下不留透明边
    assert canvas.getpixel((1000, 10))[3] == 255
    assert canvas.getpixel((1000, 1990))[3] == 255


@requires_cairo
def test_vector_asset_rasterized_before_normalization() -> None:
    asset = SourceAsset(data=WIDE_SVG, media_type=SVG_MEDIA_TYPE, name="logo.svg")

    normalized = normalize_asset(asset, NormalizeConfig())

    assert (normalized.width, normalized.height) == (2000, 2000)
    assert normalized.has_alpha is False


@requires_cairo
def test_vector_canvas_then_bounded_by_max_dimension() -> None:
    asset = SourceAsset(data=WIDE_SVG, media_type=SVG_MEDIA_TYPE, name="logo.svg")

    normalized = normalize_asset(asset, NormalizeConfig(max_dimension=500, vector_canvas_size=2000))

    assert (normalized.width, normalized.height) == (500, 500)


@requires_cairo
def test_malformed_svg_raises_decode_error() -> None:
    with pytest.raises(DecodeError):
        rasterize_svg(b"<svg xmlns='http://www.w3.org/2000/svg'><rect", 100)


def test_empty_svg_raises_decode_error() -> None:
    with pytest.raises(DecodeError):
        rasterize_svg(b"   ", 100)


def test_svg_detected_by_extension() -> None:
    asset = SourceAsset(data=b"<svg/>", media_type="application/octet-stream", name="icon.SVG")
    assert asset.is_vector is True
