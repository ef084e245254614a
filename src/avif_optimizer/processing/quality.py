"""自适应两阶段压缩控制。

首轮以固定质量编码；若压缩率已达到目标或体积已足够小，直接采用首轮结果。
否则根据首轮压缩率线性插值出第二轮质量：首轮压缩得越差，第二轮质量越低，
但不会低于下限。最终取两轮中体积更小者，保证结果不比首轮更大。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from avif_optimizer.core.config import QualityConfig
from avif_optimizer.core.exceptions import EncodeError
from avif_optimizer.core.models import EncodeCandidate, NormalizedImage, reduction_ratio
from avif_optimizer.processing.encoder import AvifEncoder

LOGGER = logging.getLogger(__name__)


class PassState(str, Enum):
    PASS1_PENDING = "pass1-pending"
    PASS1_DONE = "pass1-done"
    PASS2_PENDING = "pass2-pending"
    PASS2_DONE = "pass2-done"
    ACCEPTED = "accepted"


@dataclass(slots=True)
class QualityOutcome:
    """一次控制流程的结果：最终候选以及各轮候选。"""

    chosen: EncodeCandidate
    first: EncodeCandidate
    second: Optional[EncodeCandidate] = None
    history: list[PassState] = field(default_factory=list)

    @property
    def passes(self) -> int:
        return 1 if self.second is None else 2


def round_half_up(value: float) -> int:
    """四舍五入（远离零），区别于内置 ``round`` 的银行家舍入。"""

    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def second_pass_quality(reduction: float, config: QualityConfig) -> int:
    """``Qmin + (Qmax - Qmin) * clamp(reduction / R_target, 0, 1)``，取整。"""

    scale = max(0.0, min(1.0, reduction / config.target_reduction))
    span = config.second_pass_max_quality - config.second_pass_min_quality
    return round_half_up(config.second_pass_min_quality + span * scale)


def accepts_first_pass(candidate: EncodeCandidate, original_size: int, config: QualityConfig) -> bool:
    reduction = reduction_ratio(candidate.size, original_size)
    return reduction >= config.target_reduction or candidate.size < config.min_accept_size


class QualityController:
    """对单张归一化图片执行一到两轮编码并选出最终候选。"""

    def __init__(self, encoder: AvifEncoder, config: Optional[QualityConfig] = None) -> None:
        self.encoder = encoder
        self.config = config or QualityConfig()
        self.config.validate()

    def run(self, normalized: NormalizedImage, original_size: int) -> QualityOutcome:
        config = self.config
        history = [PassState.PASS1_PENDING]

        first = self._encode(normalized, config.first_pass_quality, config.first_pass_speed, pass_number=1)
        history.append(PassState.PASS1_DONE)
        reduction = reduction_ratio(first.size, original_size)
        LOGGER.info(
            "pass 1 quality=%d size=%d reduction=%.3f",
            first.quality,
            first.size,
            reduction,
        )

        if accepts_first_pass(first, original_size, config):
            history.append(PassState.ACCEPTED)
            return QualityOutcome(chosen=first, first=first, history=history)

        quality = second_pass_quality(reduction, config)
        history.append(PassState.PASS2_PENDING)
        second = self._encode(normalized, quality, config.second_pass_speed, pass_number=2)
        history.append(PassState.PASS2_DONE)
        LOGGER.info(
            "pass 2 quality=%d size=%d reduction=%.3f",
            second.quality,
            second.size,
            reduction_ratio(second.size, original_size),
        )

        chosen = second
        if config.keep_smaller and first.size <= second.size:
            LOGGER.info("pass 2 未变小 (%d >= %d)，保留 pass 1 结果", second.size, first.size)
            chosen = first

        history.append(PassState.ACCEPTED)
        return QualityOutcome(chosen=chosen, first=first, second=second, history=history)

    def _encode(self, normalized: NormalizedImage, quality: int, speed: int, *, pass_number: int) -> EncodeCandidate:
        try:
            data = self.encoder.encode(normalized.image, quality, speed=speed)
        except EncodeError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise EncodeError(f"编码器异常 (pass {pass_number}, quality={quality}): {exc}") from exc
        return EncodeCandidate(data=data, quality=quality, pass_number=pass_number)
