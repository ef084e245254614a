"""批处理流水线：扫描、顺序压缩、汇总输出与报告。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from avif_optimizer.core.config import JobConfig
from avif_optimizer.core.exceptions import ArchiveWriteError, DecodeError
from avif_optimizer.core.models import BatchResult, FileOutcome, QueueItem
from avif_optimizer.core.progress import ProgressUpdate
from avif_optimizer.core.report import write_csv_report
from avif_optimizer.core.results import ResultCollection, write_archive
from avif_optimizer.core.scanner import collect_source_paths, load_source_asset
from avif_optimizer.processing.encoder import AvifEncoder, PillowAvifEncoder
from avif_optimizer.processing.queue import ProcessingQueue
from avif_optimizer.processing.quality import QualityController
from avif_optimizer.processing.worker import build_item_processor, outcome_from_item

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


def process_batch(
    config: JobConfig,
    progress_callback: ProgressCallback = None,
    *,
    encoder: Optional[AvifEncoder] = None,
) -> BatchResult:
    """批量处理入口：扫描源文件，逐个压缩为 AVIF，写出文件、压缩包与报告。"""

    config.normalize.validate()
    controller = QualityController(encoder or PillowAvifEncoder(), config.quality)
    processor = build_item_processor(controller, config.normalize, config.output)

    LOGGER.info("开始扫描输入路径")
    paths = collect_source_paths(config)
    total = len(paths)
    LOGGER.info("发现 %d 个候选图片文件", total)

    result = BatchResult()
    collection = ResultCollection()

    if total == 0:
        _emit_progress(progress_callback, result, completed=0, total=0, message="没有需要处理的图片", status="done")
        return result

    completed = 0

    def record(item: QueueItem) -> None:
        nonlocal completed
        if item.result is not None:
            item.result = collection.add(item.result)
        outcome = outcome_from_item(item)
        if item.result is not None:
            result.succeeded.append(outcome)
        else:
            result.failed.append(outcome)
        completed += 1
        _emit_progress(progress_callback, result, completed, total, f"完成 {item.asset.name}", item_name=item.asset.name)

    queue = ProcessingQueue(processor, on_result=record, on_failure=record)
    _emit_progress(progress_callback, result, completed, total, "开始执行处理任务")

    for path in paths:
        try:
            asset = load_source_asset(path)
        except DecodeError as exc:
            LOGGER.error("读取失败：%s", exc)
            result.failed.append(FileOutcome(source_name=path.name, status="error-read", message=str(exc)))
            completed += 1
            _emit_progress(progress_callback, result, completed, total, f"读取失败 {path.name}", item_name=path.name)
            continue
        queue.enqueue(asset)

    output_dir = config.output.output_dir
    if output_dir is not None:
        _write_outputs(config, collection, result, output_dir)

    _emit_progress(progress_callback, result, total, total, "处理完成", status="done")
    return result


def _write_outputs(config: JobConfig, collection: ResultCollection, result: BatchResult, output_dir: Path) -> None:
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ArchiveWriteError(f"无法创建输出目录: {output_dir}") from exc

    if config.output.write_files:
        written, errors = collection.write_files(output_dir)
        LOGGER.info("已写出 %d/%d 个文件", len(written), len(collection))
        if errors:
            _mark_write_failures(result, errors)
    if config.output.write_archive and not collection.is_empty():
        try:
            result.archive_path = write_archive(collection, output_dir / config.output.archive_name)
        except ArchiveWriteError as exc:
            LOGGER.error("写入压缩包失败：%s", exc)
    _write_report(config, output_dir, result)


def _mark_write_failures(result: BatchResult, errors: dict[str, ArchiveWriteError]) -> None:
    """把未能落盘的结果从成功列表移到失败列表。"""

    kept: list[FileOutcome] = []
    for outcome in result.succeeded:
        error = errors.get(outcome.output_name or "")
        if error is None:
            kept.append(outcome)
            continue
        outcome.status = "error-write"
        outcome.message = str(error)
        result.failed.append(outcome)
    result.succeeded = kept


def _emit_progress(
    callback: ProgressCallback,
    result: BatchResult,
    completed: int,
    total: int,
    message: Optional[str] = None,
    *,
    item_name: Optional[str] = None,
    status: str = "running",
) -> None:
    if not callback:
        return
    callback(
        ProgressUpdate(
            total=total,
            completed=completed,
            failed=len(result.failed),
            item_name=item_name,
            message=message,
            status=status,
        )
    )


def _write_report(config: JobConfig, output_dir: Path, result: BatchResult) -> None:
    try:
        write_csv_report(result.all_outcomes(), output_dir, config.report_filename)
    except OSError as exc:
        LOGGER.error("写入报告失败：%s", exc)
