"""单个条目的完整处理流程：归一化 -> 质量控制 -> 结果。"""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable

from avif_optimizer.core.config import NormalizeConfig, OutputConfig
from avif_optimizer.core.exceptions import DecodeError, EncodeError
from avif_optimizer.core.models import FileOutcome, ProcessingResult, QueueItem, SourceAsset
from avif_optimizer.core.results import derive_output_name
from avif_optimizer.processing.normalizer import normalize_asset
from avif_optimizer.processing.quality import QualityController

LOGGER = logging.getLogger(__name__)

ItemProcessor = Callable[[SourceAsset], ProcessingResult]


def run_item(
    asset: SourceAsset,
    controller: QualityController,
    normalize_config: NormalizeConfig,
    output_config: OutputConfig,
) -> ProcessingResult:
    """处理单个源图片。压缩率始终相对原始字节数计算。"""

    normalized = normalize_asset(asset, normalize_config)
    LOGGER.debug(
        "%s 归一化为 %dx%d has_alpha=%s",
        asset.name,
        normalized.width,
        normalized.height,
        normalized.has_alpha,
    )
    try:
        outcome = controller.run(normalized, asset.size)
    finally:
        normalized.release()

    return ProcessingResult(
        data=outcome.chosen.data,
        name=derive_output_name(asset.name, output_config),
        original_size=asset.size,
        quality=outcome.chosen.quality,
        passes=outcome.passes,
    )


def build_item_processor(
    controller: QualityController,
    normalize_config: NormalizeConfig,
    output_config: OutputConfig,
) -> ItemProcessor:
    return partial(
        run_item,
        controller=controller,
        normalize_config=normalize_config,
        output_config=output_config,
    )


def failure_status(error: BaseException) -> str:
    if isinstance(error, DecodeError):
        return "error-decode"
    if isinstance(error, EncodeError):
        return "error-encode"
    return "error-worker"


def outcome_from_item(item: QueueItem) -> FileOutcome:
    """把终态的队列条目转换为报告记录。"""

    asset = item.asset
    if item.result is not None:
        result = item.result
        return FileOutcome(
            source_name=asset.name,
            status="processed",
            original_size=asset.size,
            output_name=result.name,
            output_size=result.size,
            quality=result.quality,
            passes=result.passes,
        )

    error = item.error
    return FileOutcome(
        source_name=asset.name,
        status=failure_status(error) if error is not None else "error-worker",
        original_size=asset.size,
        message=str(error) if error is not None else None,
    )
