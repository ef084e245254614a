"""Tkinter 图形界面实现。"""

from __future__ import annotations

import logging
import queue
import tkinter as tk
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from tkinter import filedialog, messagebox, ttk
from typing import Dict

from avif_optimizer.core.config import NormalizeConfig, OutputConfig, QualityConfig
from avif_optimizer.core.exceptions import AvifOptimizerError
from avif_optimizer.core.models import ProcessingResult, QueueItem
from avif_optimizer.core.results import ResultCollection, write_archive
from avif_optimizer.core.scanner import IMAGE_EXTENSIONS, load_source_asset
from avif_optimizer.processing.encoder import PillowAvifEncoder
from avif_optimizer.processing.queue import ProcessingQueue
from avif_optimizer.processing.quality import QualityController
from avif_optimizer.processing.worker import build_item_processor
from avif_optimizer.utils.formatting import format_bytes, format_percent
from avif_optimizer.utils.logging import setup_logging

LOGGER = logging.getLogger(__name__)


class TextWidgetHandler(logging.Handler):
    """Logging handler that writes records into a Tk Text widget."""

    def __init__(self, widget: tk.Text) -> None:
        super().__init__()
        self._widget = widget

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401 - standard logging handler signature
        message = self.format(record)
        # Schedule UI update on main thread
        self._widget.after(0, self._write, message)

    def _write(self, message: str) -> None:
        if not self._widget.winfo_exists():
            return
        self._widget.configure(state=tk.NORMAL)
        self._widget.insert(tk.END, message + "\n")
        self._widget.configure(state=tk.DISABLED)
        self._widget.see(tk.END)


class AvifOptimizerApp(tk.Tk):
    """Tkinter 主窗口：选择文件后逐个压缩，结果可单独保存或打包下载。"""

    def __init__(self) -> None:
        super().__init__()
        self.title("AVIF Optimizer")
        self.geometry("860x560")
        setup_logging()

        self.results = ResultCollection()
        self._rows: Dict[str, ProcessingResult] = {}
        self._event_queue: queue.Queue = queue.Queue()
        # 单线程执行器：保证同一时刻只处理一个条目，界面线程保持响应。
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="avif-worker")

        controller = QualityController(PillowAvifEncoder(), QualityConfig())
        processor = build_item_processor(controller, NormalizeConfig(), OutputConfig())
        self.queue = ProcessingQueue(
            processor,
            on_start=lambda item: self._event_queue.put(("start", item)),
            on_result=lambda item: self._event_queue.put(("done", item)),
            on_failure=lambda item: self._event_queue.put(("failed", item)),
            schedule=self._executor.submit,
        )

        self._build_ui()
        self.protocol("WM_DELETE_WINDOW", self._handle_close)
        self.after(200, self._poll_queue)

    def _build_ui(self) -> None:
        container = ttk.Frame(self, padding=12)
        container.pack(fill=tk.BOTH, expand=True)

        toolbar = ttk.Frame(container)
        toolbar.pack(fill=tk.X)
        ttk.Button(toolbar, text="添加图片...", command=self._add_files).pack(side=tk.LEFT)
        ttk.Button(toolbar, text="清空排队", command=self._discard_pending).pack(side=tk.LEFT, padx=(6, 0))
        ttk.Button(toolbar, text="保存选中", command=self._save_selected).pack(side=tk.LEFT, padx=(6, 0))
        self.download_all_button = ttk.Button(
            toolbar, text="全部下载 (ZIP)", command=self._download_all, state=tk.DISABLED
        )
        self.download_all_button.pack(side=tk.RIGHT)

        columns = ("file", "original", "optimized", "output")
        self.table = ttk.Treeview(container, columns=columns, show="headings", height=12)
        for column, label, width in (
            ("file", "文件", 260),
            ("original", "原始大小", 110),
            ("optimized", "压缩后", 160),
            ("output", "输出文件", 240),
        ):
            self.table.heading(column, text=label)
            self.table.column(column, width=width, anchor=tk.W)
        self.table.pack(fill=tk.BOTH, expand=True, pady=8)

        log_frame = ttk.LabelFrame(container, text="日志", padding=8)
        log_frame.pack(fill=tk.BOTH, expand=False)
        self.log_text = tk.Text(log_frame, height=8, state=tk.DISABLED)
        self.log_text.pack(fill=tk.BOTH, expand=True)

        handler = TextWidgetHandler(self.log_text)
        handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logging.getLogger("avif_optimizer").addHandler(handler)

    # ---------------------- 事件处理 ---------------------- #

    def _add_files(self) -> None:
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        filenames = filedialog.askopenfilenames(title="选择图片", filetypes=[("图像文件", patterns)])
        for filename in filenames:
            path = Path(filename)
            try:
                asset = load_source_asset(path)
            except AvifOptimizerError as exc:
                messagebox.showerror("读取失败", str(exc))
                continue
            row_id = self.table.insert(
                "", tk.END, values=(asset.name, format_bytes(asset.size), "排队中...", "")
            )
            self.queue.enqueue(asset, handle=row_id)

    def _discard_pending(self) -> None:
        for item in self.queue.discard_pending():
            if self.table.exists(item.handle):
                self.table.delete(item.handle)

    def _poll_queue(self) -> None:
        try:
            while True:
                kind, item = self._event_queue.get_nowait()
                if kind == "start":
                    self._set_cell(item, "optimized", "处理中...")
                elif kind == "done":
                    self._handle_done(item)
                elif kind == "failed":
                    self._set_cell(item, "optimized", "❌ 失败")
        except queue.Empty:
            pass
        finally:
            self.after(200, self._poll_queue)

    def _handle_done(self, item: QueueItem) -> None:
        if item.result is None:
            self._set_cell(item, "optimized", "❌ 失败")
            return
        stored = self.results.add(item.result)
        self._rows[item.handle] = stored
        self._set_cell(item, "optimized", f"{format_bytes(stored.size)} ({format_percent(stored.reduction)})")
        self._set_cell(item, "output", stored.name)
        self.download_all_button.configure(state=tk.NORMAL)

    def _set_cell(self, item: QueueItem, column: str, value: str) -> None:
        if self.table.exists(item.handle):
            self.table.set(item.handle, column, value)

    def _save_selected(self) -> None:
        selected = [self._rows[row] for row in self.table.selection() if row in self._rows]
        if not selected:
            messagebox.showinfo("提示", "请先选择已完成的条目。")
            return
        directory = filedialog.askdirectory(title="选择保存目录")
        if not directory:
            return
        try:
            for result in selected:
                (Path(directory) / result.name).write_bytes(result.data)
        except OSError as exc:
            LOGGER.error("保存文件失败：%s", exc)
            messagebox.showerror("错误", f"保存失败：{exc}")
            return
        LOGGER.info("已保存 %d 个文件到 %s", len(selected), directory)

    def _download_all(self) -> None:
        if self.results.is_empty():
            return
        filename = filedialog.asksaveasfilename(
            title="保存压缩包",
            defaultextension=".zip",
            initialfile="optimized-images.zip",
            filetypes=[("ZIP 文件", "*.zip")],
        )
        if not filename:
            return
        try:
            write_archive(self.results, Path(filename))
        except AvifOptimizerError as exc:
            messagebox.showerror("错误", str(exc))

    def _handle_close(self) -> None:
        self.queue.discard_pending()
        self._executor.shutdown(wait=False)
        self.destroy()


def run_gui() -> None:
    """启动 GUI 应用。"""

    app = AvifOptimizerApp()
    app.mainloop()


if __name__ == "__main__":
    run_gui()
