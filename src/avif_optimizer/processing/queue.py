"""顺序处理队列。

任意时刻最多只有一个条目处于处理中：像素缓冲区与编码开销都很大，
队列按 FIFO 顺序逐个排空。单个条目的失败只影响该条目。
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Iterable, Optional

from avif_optimizer.core.models import ItemState, QueueItem, SourceAsset
from avif_optimizer.processing.worker import ItemProcessor

LOGGER = logging.getLogger(__name__)

ItemCallback = Optional[Callable[[QueueItem], None]]
# 接收一个无参回调并安排其稍后执行，例如 ``lambda cb: root.after(0, cb)``。
SchedulingHook = Callable[[Callable[[], None]], None]


class ProcessingQueue:
    """FIFO 队列，单个逻辑工作者依次处理条目。

    未提供 ``schedule`` 时，``enqueue`` 在当前线程内同步排空队列；
    提供后，每个条目都通过该钩子安排执行，条目之间把控制权交还宿主。
    """

    def __init__(
        self,
        processor: ItemProcessor,
        *,
        on_start: ItemCallback = None,
        on_result: ItemCallback = None,
        on_failure: ItemCallback = None,
        schedule: Optional[SchedulingHook] = None,
    ) -> None:
        self._processor = processor
        self._on_start = on_start
        self._on_result = on_result
        self._on_failure = on_failure
        self._schedule = schedule
        self._pending: deque[QueueItem] = deque()
        self._current: Optional[QueueItem] = None
        self._active = False
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def current(self) -> Optional[QueueItem]:
        return self._current

    @property
    def pending(self) -> list[QueueItem]:
        with self._lock:
            return list(self._pending)

    def enqueue(self, asset: SourceAsset, handle: object = None) -> QueueItem:
        """追加到队尾；队列空闲时开始排空。"""

        item = QueueItem(asset=asset, handle=handle)
        with self._lock:
            self._pending.append(item)
            should_start = not self._active
            if should_start:
                self._active = True
        LOGGER.debug("入队 %s (%d bytes)", asset.name, asset.size)
        if should_start:
            self._start()
        return item

    def enqueue_many(self, assets: Iterable[SourceAsset]) -> list[QueueItem]:
        items: list[QueueItem] = []
        for asset in assets:
            items.append(self.enqueue(asset))
        return items

    def discard_pending(self) -> list[QueueItem]:
        """丢弃尚未开始的条目；处理中的条目不受影响。"""

        with self._lock:
            dropped = list(self._pending)
            self._pending.clear()
        if dropped:
            LOGGER.info("已丢弃 %d 个排队条目", len(dropped))
        return dropped

    def _start(self) -> None:
        if self._schedule is None:
            while self._process_next():
                pass
        else:
            try:
                self._schedule(self._step)
            except Exception:
                with self._lock:
                    self._active = False
                raise

    def _step(self) -> None:
        if self._process_next():
            self._schedule(self._step)

    def _process_next(self) -> bool:
        with self._lock:
            if not self._pending:
                self._active = False
                self._current = None
                return False
            item = self._pending.popleft()
            self._current = item

        self._run(item)
        return True

    def _run(self, item: QueueItem) -> None:
        item.state = ItemState.ACTIVE
        LOGGER.info("开始处理 %s", item.asset.name)
        self._notify(self._on_start, item)

        try:
            item.result = self._processor(item.asset)
        except Exception as exc:  # noqa: BLE001
            item.error = exc
            item.state = ItemState.FAILED
            LOGGER.error("处理失败 %s: %s", item.asset.name, exc, exc_info=exc)
            self._notify(self._on_failure, item)
            return

        item.state = ItemState.DONE
        LOGGER.info(
            "处理完成 %s -> %s (%d -> %d bytes)",
            item.asset.name,
            item.result.name,
            item.asset.size,
            item.result.size,
        )
        self._notify(self._on_result, item)

    @staticmethod
    def _notify(callback: ItemCallback, item: QueueItem) -> None:
        # 回调异常不能中断排空，否则队列会停在 active 状态
        if callback is None:
            return
        try:
            callback(item)
        except Exception:  # noqa: BLE001
            LOGGER.exception("回调处理 %s 时出错", item.asset.name)
