"""真实 AVIF 编码（需要 Pillow 启用 AVIF 支持）。"""

from __future__ import annotations

import io

import pytest
from PIL import Image

from avif_optimizer.core.config import NormalizeConfig, OutputConfig, QualityConfig
from avif_optimizer.core.models import SourceAsset
from avif_optimizer.processing.encoder import PillowAvifEncoder, avif_supported
from avif_optimizer.processing.quality import QualityController
from avif_optimizer.processing.worker import run_item

from conftest import image_bytes

pytestmark = pytest.mark.skipif(not avif_supported(), reason="当前 Pillow 未启用 AVIF")


def test_pillow_encoder_produces_avif() -> None:
    data = PillowAvifEncoder().encode(Image.new("RGB", (64, 64), "teal"), 70, speed=8)

    assert data[4:8] == b"ftyp"
    with Image.open(io.BytesIO(data)) as decoded:
        assert decoded.format == "AVIF"
        assert decoded.size == (64, 64)


def test_lower_quality_is_not_larger() -> None:
    image = Image.effect_noise((128, 128), 64).convert("RGB")
    encoder = PillowAvifEncoder()

    high = encoder.encode(image, 90, speed=8)
    low = encoder.encode(image, 30, speed=8)

    assert len(low) <= len(high)


def test_run_item_end_to_end() -> None:
    source = image_bytes(Image.effect_noise((256, 256), 80).convert("RGB"), "BMP")
    asset = SourceAsset(data=source, media_type="image/bmp", name="noise.bmp")
    controller = QualityController(PillowAvifEncoder(), QualityConfig(first_pass_speed=8, second_pass_speed=8))

    result = run_item(asset, controller, NormalizeConfig(), OutputConfig())

    assert result.name == "opt_noise.avif"
    assert result.original_size == len(source)
    assert 0 < result.size < len(source)
    assert result.passes in (1, 2)
