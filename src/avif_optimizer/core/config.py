"""处理任务的配置模型。"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Tuple

from PIL import ImageColor

from avif_optimizer.core.exceptions import InvalidConfigurationError

DEFAULT_INCLUDE_PATTERNS = (
    "*.jpg",
    "*.jpeg",
    "*.png",
    "*.webp",
    "*.gif",
    "*.bmp",
    "*.tif",
    "*.tiff",
    "*.svg",
)


@dataclass(slots=True)
class NormalizeConfig:
    """尺寸归一化与透明度处理配置。"""

    max_dimension: int = 2000
    vector_canvas_size: int = 2000
    background_color: str = "#FFFFFF"
    flatten_opaque: bool = True

    def validate(self) -> None:
        if self.max_dimension <= 0:
            raise InvalidConfigurationError("max_dimension 必须大于 0")
        if self.vector_canvas_size <= 0:
            raise InvalidConfigurationError("vector_canvas_size 必须大于 0")
        try:
            ImageColor.getrgb(self.background_color)
        except ValueError as exc:
            raise InvalidConfigurationError(f"无法解析颜色值: {self.background_color}") from exc


@dataclass(slots=True)
class QualityConfig:
    """两阶段压缩的阈值与质量区间。

    默认值为保守组合：首轮质量 70，目标压缩率 60%，小于 75 KiB 直接接受，
    第二轮质量在 40~65 之间按首轮压缩率线性插值。
    """

    first_pass_quality: int = 70
    target_reduction: float = 0.6
    min_accept_size: int = 75 * 1024
    second_pass_min_quality: int = 40
    second_pass_max_quality: int = 65
    first_pass_speed: int = 4
    second_pass_speed: int = 6
    keep_smaller: bool = True

    def validate(self) -> None:
        for name in ("first_pass_quality", "second_pass_min_quality", "second_pass_max_quality"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise InvalidConfigurationError(f"{name} 必须位于 0~100 之间: {value}")
        if self.second_pass_min_quality > self.second_pass_max_quality:
            raise InvalidConfigurationError("second_pass_min_quality 不能大于 second_pass_max_quality")
        if not 0 < self.target_reduction <= 1:
            raise InvalidConfigurationError(f"target_reduction 必须位于 (0, 1]: {self.target_reduction}")
        if self.min_accept_size < 0:
            raise InvalidConfigurationError("min_accept_size 不能为负数")
        for name in ("first_pass_speed", "second_pass_speed"):
            value = getattr(self, name)
            if not 0 <= value <= 10:
                raise InvalidConfigurationError(f"{name} 必须位于 0~10 之间: {value}")


@dataclass(slots=True)
class OutputConfig:
    """输出命名、目录与打包配置。"""

    output_dir: Optional[Path] = None
    name_prefix: str = "opt_"
    name_suffix: str = ""
    extension: str = ".avif"
    archive_name: str = "optimized-images.zip"
    write_files: bool = True
    write_archive: bool = False


@dataclass(slots=True)
class JobConfig:
    """单次批处理任务的配置集合。"""

    sources: Sequence[Path]
    output: OutputConfig
    normalize: NormalizeConfig = field(default_factory=NormalizeConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    allow_recursive: bool = True
    include_patterns: Sequence[str] = field(default_factory=lambda: DEFAULT_INCLUDE_PATTERNS)
    exclude_patterns: Sequence[str] = field(default_factory=tuple)
    report_filename: str = "report.csv"


@dataclass(slots=True)
class ServerConfig:
    """请求模式（HTTP 服务）配置。"""

    max_body_bytes: int = 10 * 1024 * 1024
    timeout_seconds: float = 9.0
    environment: str = "development"
    cors_allow_origins: Tuple[str, ...] = ("*",)
    normalize: NormalizeConfig = field(default_factory=NormalizeConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)

    @property
    def expose_error_details(self) -> bool:
        return self.environment.lower() != "production"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """从环境变量读取服务配置。"""

        try:
            max_body = int(os.getenv("AVIF_MAX_BODY_BYTES", str(10 * 1024 * 1024)))
            timeout = float(os.getenv("AVIF_TIMEOUT_SECONDS", "9"))
        except ValueError as exc:
            raise InvalidConfigurationError(f"无法解析服务环境变量: {exc}") from exc

        origins = tuple(x.strip() for x in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if x.strip())
        return cls(
            max_body_bytes=max_body,
            timeout_seconds=timeout,
            environment=os.getenv("AVIF_ENV", "development"),
            cors_allow_origins=origins or ("*",),
        )
