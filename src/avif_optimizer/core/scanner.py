"""文件扫描与源图片读取。"""

from __future__ import annotations

import mimetypes
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterator, Sequence

from avif_optimizer.core.config import DEFAULT_INCLUDE_PATTERNS, JobConfig
from avif_optimizer.core.exceptions import DecodeError
from avif_optimizer.core.models import SVG_MEDIA_TYPE, SourceAsset

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff", ".svg"}


def _iter_candidate_files(path: Path, recursive: bool) -> Iterator[Path]:
    """遍历路径下的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        return

    iterator = path.rglob("*") if recursive else path.glob("*")
    for candidate in iterator:
        if candidate.is_file():
            yield candidate


def _matches_any(name: str, patterns: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(fnmatch(lowered, pattern.lower()) for pattern in patterns)


def collect_source_paths(config: JobConfig) -> list[Path]:
    """根据配置扫描源路径，返回匹配的图片文件列表。"""

    collected: list[Path] = []
    seen_paths: set[Path] = set()

    include_patterns = config.include_patterns or DEFAULT_INCLUDE_PATTERNS
    exclude_patterns = config.exclude_patterns or ()

    for root in config.sources:
        resolved_root = root.resolve()
        for candidate in _iter_candidate_files(resolved_root, config.allow_recursive):
            if candidate in seen_paths:
                continue
            seen_paths.add(candidate)

            name = candidate.name
            if not _matches_any(name, include_patterns):
                continue
            if exclude_patterns and _matches_any(name, exclude_patterns):
                continue

            if candidate.suffix.lower() not in IMAGE_EXTENSIONS:
                continue

            collected.append(candidate)

    collected.sort(key=lambda x: str(x).lower())
    return collected


def guess_media_type(path: Path) -> str:
    if path.suffix.lower() == ".svg":
        return SVG_MEDIA_TYPE
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or "application/octet-stream"


def load_source_asset(path: Path) -> SourceAsset:
    """读取文件为 SourceAsset。"""

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise DecodeError(f"无法读取文件: {path}") from exc
    return SourceAsset(data=data, media_type=guess_media_type(path), name=path.name)
