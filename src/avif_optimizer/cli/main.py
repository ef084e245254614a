"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from avif_optimizer.core.config import JobConfig, NormalizeConfig, OutputConfig, QualityConfig, ServerConfig
from avif_optimizer.core.exceptions import ArchiveWriteError, InvalidConfigurationError
from avif_optimizer.core.models import BatchResult
from avif_optimizer.core.progress import ProgressUpdate
from avif_optimizer.processing.pipeline import process_batch
from avif_optimizer.utils.formatting import format_bytes, format_percent
from avif_optimizer.utils.logging import setup_logging

app = typer.Typer(help="将图片批量压缩为 AVIF，按目标压缩率自动选择一到两轮编码。")


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("压缩图片", total=update.total)
        description = "压缩图片" if not update.failed else f"压缩图片（失败 {update.failed}）"
        progress.update(task_id, completed=update.completed, description=description)
        if update.message:
            progress.log(update.message)

    return callback


def _render_summary(result: BatchResult) -> Table:
    table = Table(title="处理结果")
    table.add_column("文件")
    table.add_column("原始大小", justify="right")
    table.add_column("压缩后", justify="right")
    table.add_column("轮次", justify="right")
    table.add_column("输出")

    for outcome in result.all_outcomes():
        if outcome.output_size is None:
            table.add_row(outcome.source_name, format_bytes(outcome.original_size), "❌ 失败", "", outcome.message or "")
            continue
        reduction = format_percent(outcome.reduction or 0.0)
        table.add_row(
            outcome.source_name,
            format_bytes(outcome.original_size),
            f"{format_bytes(outcome.output_size)} ({reduction})",
            str(outcome.passes or ""),
            outcome.output_name or "",
        )
    return table


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    max_dimension: int = typer.Option(2000, "--max-dimension", help="最长边上限（像素），不放大"),
    vector_size: int = typer.Option(2000, "--vector-size", help="SVG 栅格化画布边长"),
    first_quality: int = typer.Option(70, "--quality", "-q", help="首轮编码质量 0~100"),
    target_reduction: float = typer.Option(0.6, "--target-reduction", help="首轮可接受的压缩率 (0, 1]"),
    min_size_kib: int = typer.Option(75, "--min-size-kib", help="首轮结果小于此体积 (KiB) 时直接接受"),
    min_quality: int = typer.Option(40, "--min-quality", help="第二轮质量下限"),
    max_quality: int = typer.Option(65, "--max-quality", help="第二轮质量上限"),
    keep_smaller: bool = typer.Option(True, "--keep-smaller/--always-second-pass", help="第二轮未变小时保留首轮结果"),
    prefix: str = typer.Option("opt_", "--prefix", help="输出文件名前缀"),
    suffix: str = typer.Option("", "--suffix", help="输出文件名后缀（扩展名之前）"),
    make_zip: bool = typer.Option(False, "--zip", help="额外打包为 ZIP"),
    archive_name: str = typer.Option("optimized-images.zip", "--archive-name", help="ZIP 文件名"),
    allow_recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行批量压缩。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    sources = [p.expanduser().resolve() for p in source]
    output_dir = output.expanduser().resolve()

    job = JobConfig(
        sources=sources,
        output=OutputConfig(
            output_dir=output_dir,
            name_prefix=prefix,
            name_suffix=suffix,
            archive_name=archive_name,
            write_archive=make_zip,
        ),
        normalize=NormalizeConfig(max_dimension=max_dimension, vector_canvas_size=vector_size),
        quality=QualityConfig(
            first_pass_quality=first_quality,
            target_reduction=target_reduction,
            min_accept_size=min_size_kib * 1024,
            second_pass_min_quality=min_quality,
            second_pass_max_quality=max_quality,
            keep_smaller=keep_smaller,
        ),
        allow_recursive=allow_recursive,
    )

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )

    try:
        with progress:
            result = process_batch(job, progress_callback=_build_progress_callback(progress))
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except ArchiveWriteError as exc:
        typer.echo(f"写入输出失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    console = Console()
    if result.all_outcomes():
        console.print(_render_summary(result))
    typer.echo(f"处理完成：成功 {len(result.succeeded)} 张，失败 {len(result.failed)} 张。")
    if result.archive_path:
        typer.echo(f"压缩包：{result.archive_path}")
    typer.echo(f"报告文件：{output_dir / job.report_filename}")


@app.command("serve")
def serve_cli(
    host: str = typer.Option("127.0.0.1", "--host", help="监听地址"),
    port: int = typer.Option(8080, "--port", help="监听端口"),
) -> None:
    """以 HTTP 服务方式运行请求模式。"""

    import uvicorn

    from avif_optimizer.server.app import create_app

    setup_logging()
    config = ServerConfig.from_env()
    uvicorn.run(create_app(config), host=host, port=port)


@app.command("gui")
def gui_cli() -> None:
    """启动桌面界面。"""

    from avif_optimizer.gui.app import run_gui

    run_gui()


if __name__ == "__main__":
    app()
