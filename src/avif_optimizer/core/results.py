"""结果汇总、输出命名与打包。"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import replace
from itertools import count
from pathlib import Path, PurePath
from typing import Optional, Protocol

from avif_optimizer.core.config import OutputConfig
from avif_optimizer.core.exceptions import ArchiveWriteError
from avif_optimizer.core.models import ProcessingResult

LOGGER = logging.getLogger(__name__)


def derive_output_name(source_name: str, config: OutputConfig) -> str:
    """根据源文件名生成输出文件名，例如 ``photo.jpg`` -> ``opt_photo.avif``。"""

    stem = PurePath(source_name).stem or "image"
    extension = config.extension if config.extension.startswith(".") else f".{config.extension}"
    return f"{config.name_prefix}{stem}{config.name_suffix}{extension}"


def resolve_unique_name(name: str, taken: set[str]) -> str:
    """在已占用的名称集合中为 ``name`` 生成不冲突的名称（追加 ``_1``、``_2``...）。"""

    if name not in taken:
        return name

    path = PurePath(name)
    stem = path.stem
    suffix = path.suffix
    for idx in count(1):
        candidate = f"{stem}_{idx}{suffix}"
        if candidate not in taken:
            return candidate

    # 理论上不会执行到此处
    return name


class ArchiveBuilder(Protocol):
    """打包器的最小契约：接收命名的字节块。"""

    def accept(self, name: str, data: bytes) -> None:
        ...


class ResultCollection:
    """按插入顺序保存一个批次的处理结果。"""

    def __init__(self) -> None:
        self._results: list[ProcessingResult] = []
        self._names: set[str] = set()

    def add(self, result: ProcessingResult) -> ProcessingResult:
        """加入结果；若名称与已有结果冲突则重命名，返回实际保存的结果。"""

        unique = resolve_unique_name(result.name, self._names)
        if unique != result.name:
            LOGGER.info("输出名称冲突：%s -> %s", result.name, unique)
            result = replace(result, name=unique)
        self._names.add(unique)
        self._results.append(result)
        return result

    def list_all(self) -> list[ProcessingResult]:
        return list(self._results)

    def is_empty(self) -> bool:
        return not self._results

    def __len__(self) -> int:
        return len(self._results)

    def bundle(self, builder: ArchiveBuilder) -> int:
        """把所有结果交给打包器，返回写入的文件数量。"""

        for result in self._results:
            builder.accept(result.name, result.data)
        return len(self._results)

    def write_files(self, output_dir: Path) -> tuple[list[Path], dict[str, ArchiveWriteError]]:
        """将每个结果单独写入目录；单个文件写入失败不影响其余文件。

        返回已写出的路径，以及按结果名称记录的写入错误。
        """

        output_dir.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []
        errors: dict[str, ArchiveWriteError] = {}
        for result in self._results:
            destination = output_dir / result.name
            try:
                destination.write_bytes(result.data)
            except OSError as exc:
                LOGGER.error("写入文件失败 %s: %s", destination, exc)
                errors[result.name] = ArchiveWriteError(f"写入文件失败: {destination} ({exc})")
                continue
            written.append(destination)
        return written, errors


class ZipArchiveBuilder:
    """将结果写入 ZIP 压缩包。"""

    def __init__(self, destination: Path) -> None:
        self.destination = destination
        self._archive: Optional[zipfile.ZipFile] = None

    def __enter__(self) -> "ZipArchiveBuilder":
        self.destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._archive = zipfile.ZipFile(self.destination, "w", compression=zipfile.ZIP_STORED)
        except OSError as exc:
            raise ArchiveWriteError(f"无法创建压缩包: {self.destination}") from exc
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._archive is not None:
            self._archive.close()
            self._archive = None

    def accept(self, name: str, data: bytes) -> None:
        if self._archive is None:
            raise ArchiveWriteError("压缩包尚未打开")
        try:
            self._archive.writestr(name, data)
        except OSError as exc:
            raise ArchiveWriteError(f"写入压缩包失败: {name}") from exc


def write_archive(results: ResultCollection, destination: Path) -> Path:
    """把整个批次打包为 ZIP 文件。"""

    with ZipArchiveBuilder(destination) as builder:
        count_written = results.bundle(builder)
    LOGGER.info("已打包 %d 个文件到 %s", count_written, destination)
    return destination
