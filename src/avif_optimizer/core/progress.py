"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息；``item_name`` 为刚结束的条目。"""

    total: int
    completed: int
    failed: int = 0
    item_name: Optional[str] = None
    message: Optional[str] = None
    status: str = "running"

