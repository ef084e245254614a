"""批处理流水线：扫描、压缩、写出文件、压缩包与报告。"""

from __future__ import annotations

import csv
import zipfile
from pathlib import Path

from PIL import Image

from avif_optimizer.core.config import JobConfig, OutputConfig
from avif_optimizer.core.progress import ProgressUpdate
from avif_optimizer.processing.pipeline import process_batch

from conftest import KIB, FakeEncoder


def make_config(source: Path, output: Path, **output_options: object) -> JobConfig:
    return JobConfig(
        sources=[source],
        output=OutputConfig(output_dir=output, **output_options),
    )


def test_process_batch_handles_valid_and_invalid_images(tmp_path: Path) -> None:
    source = tmp_path / "input"
    output = tmp_path / "output"
    source.mkdir()

    Image.new("RGB", (64, 64), "blue").save(source / "valid.png")
    (source / "corrupted.png").write_text("not an image")
    (source / "notes.txt").write_text("hello")

    encoder = FakeEncoder(default_size=1 * KIB)
    result = process_batch(make_config(source, output), encoder=encoder)

    assert len(result.succeeded) == 1
    assert len(result.failed) == 1
    assert result.failed[0].source_name == "corrupted.png"
    assert result.failed[0].status == "error-decode"

    written = output / "opt_valid.avif"
    assert written.exists()
    assert written.stat().st_size == 1 * KIB

    with (output / "report.csv").open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert {row["status"] for row in rows} == {"processed", "error-decode"}


def test_name_collisions_are_suffixed(tmp_path: Path) -> None:
    source = tmp_path / "input"
    output = tmp_path / "output"
    (source / "a").mkdir(parents=True)
    (source / "b").mkdir()

    Image.new("RGB", (20, 20), "red").save(source / "a" / "photo.png")
    Image.new("RGB", (20, 20), "green").save(source / "b" / "photo.jpg")

    result = process_batch(make_config(source, output), encoder=FakeEncoder(default_size=100))

    names = [outcome.output_name for outcome in result.succeeded]
    assert names == ["opt_photo.avif", "opt_photo_1.avif"]
    assert (output / "opt_photo.avif").exists()
    assert (output / "opt_photo_1.avif").exists()


def test_archive_written_when_requested(tmp_path: Path) -> None:
    source = tmp_path / "input"
    output = tmp_path / "output"
    source.mkdir()
    Image.new("RGB", (20, 20), "red").save(source / "one.png")
    Image.new("RGB", (20, 20), "blue").save(source / "two.png")

    result = process_batch(
        make_config(source, output, write_archive=True, write_files=False),
        encoder=FakeEncoder(default_size=50),
    )

    assert result.archive_path == output / "optimized-images.zip"
    assert not (output / "opt_one.avif").exists()
    with zipfile.ZipFile(result.archive_path) as handle:
        assert handle.namelist() == ["opt_one.avif", "opt_two.avif"]


def test_large_image_is_bounded_before_encoding(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    Image.new("RGB", (2500, 1000), "white").save(source / "wide.png")

    encoder = FakeEncoder(default_size=10)
    process_batch(make_config(source, tmp_path / "output"), encoder=encoder)

    assert encoder.calls[0][2] == (2000, 800)
    assert encoder.calls[0][3] == "RGB"


def test_transparent_image_keeps_alpha(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    Image.new("RGBA", (30, 30), (255, 0, 0, 128)).save(source / "ghost.png")

    encoder = FakeEncoder(default_size=10)
    process_batch(make_config(source, tmp_path / "output"), encoder=encoder)

    assert encoder.calls[0][3] == "RGBA"


def test_progress_reports_each_item(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    Image.new("RGB", (10, 10)).save(source / "a.png")
    Image.new("RGB", (10, 10)).save(source / "b.png")

    updates: list[ProgressUpdate] = []
    process_batch(make_config(source, tmp_path / "output"), updates.append, encoder=FakeEncoder(default_size=10))

    assert updates[-1].status == "done"
    assert updates[-1].completed == updates[-1].total == 2
    assert [u.item_name for u in updates if u.item_name] == ["a.png", "b.png"]
    assert [u.completed for u in updates if u.message and u.message.startswith("完成")] == [1, 2]


def test_empty_source_directory(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()

    result = process_batch(make_config(source, tmp_path / "output"), encoder=FakeEncoder())

    assert result.all_outcomes() == []


def test_unwritable_output_is_reported_and_batch_finishes(tmp_path: Path) -> None:
    source = tmp_path / "input"
    output = tmp_path / "output"
    source.mkdir()
    Image.new("RGB", (16, 16), "red").save(source / "blocked.png")
    Image.new("RGB", (16, 16), "green").save(source / "ok.png")
    # 同名目录占住输出路径
    (output / "opt_blocked.avif").mkdir(parents=True)

    result = process_batch(make_config(source, output), encoder=FakeEncoder(default_size=100))

    assert [o.source_name for o in result.succeeded] == ["ok.png"]
    assert [(o.source_name, o.status) for o in result.failed] == [("blocked.png", "error-write")]
    assert (output / "opt_ok.avif").stat().st_size == 100

    with (output / "report.csv").open("r", encoding="utf-8", newline="") as handle:
        rows = {row["source_name"]: row["status"] for row in csv.DictReader(handle)}
    assert rows == {"ok.png": "processed", "blocked.png": "error-write"}
