"""面向用户的数值格式化。"""

from __future__ import annotations


def format_bytes(size: int) -> str:
    """格式化字节数：``B`` / ``KB`` / ``MB``。"""

    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def format_percent(ratio: float) -> str:
    """将压缩率显示为整数百分比，例如 0.7 -> ``70%``。"""

    return f"{ratio * 100:.0f}%"
