"""报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from avif_optimizer.core.models import FileOutcome
from avif_optimizer.utils.formatting import format_percent

HEADER = [
    "source_name",
    "output_name",
    "status",
    "original_size",
    "output_size",
    "reduction",
    "quality",
    "passes",
    "message",
]


def write_csv_report(outcomes: Iterable[FileOutcome], output_dir: Path, filename: str) -> Path:
    """将处理结果写入 CSV 报告。"""

    report_path = output_dir / filename
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for record in outcomes:
            writer.writerow(
                [
                    record.source_name,
                    record.output_name or "",
                    record.status,
                    record.original_size,
                    _format_optional(record.output_size),
                    format_percent(record.reduction) if record.reduction is not None else "",
                    _format_optional(record.quality),
                    _format_optional(record.passes),
                    record.message or "",
                ]
            )
    return report_path


def _format_optional(value: int | None) -> str:
    if value is None:
        return ""
    return str(value)
