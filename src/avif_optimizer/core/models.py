"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from PIL import Image

SVG_MEDIA_TYPE = "image/svg+xml"
AVIF_MEDIA_TYPE = "image/avif"


def reduction_ratio(output_size: int, original_size: int) -> float:
    """计算压缩率 ``1 - output/original``。原始大小为 0 时返回 0。"""

    if original_size <= 0:
        return 0.0
    return 1.0 - (output_size / original_size)


@dataclass(frozen=True, slots=True)
class SourceAsset:
    """待处理的源图片：原始字节、声明的媒体类型与显示名称。"""

    data: bytes
    media_type: str
    name: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_vector(self) -> bool:
        if self.media_type == SVG_MEDIA_TYPE:
            return True
        return Path(self.name).suffix.lower() == ".svg"


@dataclass(slots=True)
class NormalizedImage:
    """归一化后的像素缓冲区（RGB 或 RGBA）。"""

    image: Image.Image
    has_alpha: bool

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def release(self) -> None:
        self.image.close()


@dataclass(frozen=True, slots=True)
class EncodeCandidate:
    """单次编码（pass）的产物。"""

    data: bytes
    quality: int
    pass_number: int

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class ProcessingResult:
    """单个条目的最终输出。"""

    data: bytes
    name: str
    original_size: int
    quality: int
    passes: int

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def reduction(self) -> float:
        return reduction_ratio(self.size, self.original_size)


class ItemState(str, Enum):
    """队列条目的生命周期状态。"""

    QUEUED = "queued"
    ACTIVE = "active"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True, eq=False)
class QueueItem:
    """队列中的条目，``handle`` 为界面侧的关联对象（如表格行 ID）。"""

    asset: SourceAsset
    handle: Any = None
    state: ItemState = ItemState.QUEUED
    result: Optional[ProcessingResult] = None
    error: Optional[BaseException] = None


@dataclass(slots=True)
class FileOutcome:
    """记录单个文件的处理结果（用于报告/日志）。"""

    source_name: str
    status: str
    original_size: int = 0
    output_name: Optional[str] = None
    output_size: Optional[int] = None
    quality: Optional[int] = None
    passes: Optional[int] = None
    message: Optional[str] = None

    @property
    def reduction(self) -> Optional[float]:
        if self.output_size is None:
            return None
        return reduction_ratio(self.output_size, self.original_size)


@dataclass(slots=True)
class BatchResult:
    """批处理的产出。"""

    succeeded: list[FileOutcome] = field(default_factory=list)
    failed: list[FileOutcome] = field(default_factory=list)
    archive_path: Optional[Path] = None

    def all_outcomes(self) -> list[FileOutcome]:
        """返回所有结果记录，方便生成报告。"""

        return [*self.succeeded, *self.failed]
