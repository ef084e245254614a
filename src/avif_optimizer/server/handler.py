"""请求模式：单次同步调用完成压缩，并把各类失败映射为 HTTP 状态码。"""

from __future__ import annotations

import base64
import binascii
import codecs
import json
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Optional

from avif_optimizer.core.config import OutputConfig, ServerConfig
from avif_optimizer.core.exceptions import DecodeError, EncodeError, ProcessingTimeoutError, SizeLimitError
from avif_optimizer.core.models import AVIF_MEDIA_TYPE, SVG_MEDIA_TYPE, ProcessingResult, SourceAsset
from avif_optimizer.processing.encoder import AvifEncoder, PillowAvifEncoder
from avif_optimizer.processing.quality import QualityController
from avif_optimizer.processing.worker import run_item
from avif_optimizer.utils.formatting import format_percent

LOGGER = logging.getLogger(__name__)

TIMEOUT_STATUS = 504

_SVG_ROOT = re.compile(rb"<svg[\s>/]")

_REQUEST_EXECUTOR: Optional[ThreadPoolExecutor] = None
_EXECUTOR_LOCK = threading.Lock()


@dataclass(slots=True)
class OptimiseResponse:
    """与传输层无关的响应描述。"""

    status_code: int
    body: bytes
    media_type: str = "application/json"
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> dict:
        return json.loads(self.body.decode("utf-8"))


def error_response(status_code: int, message: str, details: Optional[str] = None) -> OptimiseResponse:
    payload: dict[str, str] = {"error": message}
    if details:
        payload["details"] = details
    return OptimiseResponse(status_code=status_code, body=json.dumps(payload).encode("utf-8"))


def sniff_media_type(data: bytes) -> str:
    """粗略识别 SVG；其余交给位图解码器判断。

    文本开头可能带 BOM、XML 声明、注释或 DOCTYPE，因此在前 1 KiB 内查找根元素。
    """

    head = data[:1024]
    if head.startswith(codecs.BOM_UTF8):
        head = head[len(codecs.BOM_UTF8):]
    head = head.lstrip().lower()
    if head.startswith(b"<") and _SVG_ROOT.search(head):
        return SVG_MEDIA_TYPE
    return "application/octet-stream"


def decode_body(body: bytes | str | None, *, is_base64: bool, max_body_bytes: int) -> bytes:
    """解析请求体，必要时进行 base64 解码并检查大小上限。"""

    if not body:
        raise DecodeError("No image data provided")

    if isinstance(body, str):
        try:
            body = body.encode("latin-1")
        except UnicodeEncodeError as exc:
            raise DecodeError("Request body is not binary-safe text") from exc

    if is_base64:
        # base64 膨胀约 4/3，明显超限时无需解码
        if len(body) > (max_body_bytes * 4) // 3 + 4:
            raise SizeLimitError(f"Request body exceeds {max_body_bytes} bytes")
        try:
            data = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"Invalid base64 payload: {exc}") from exc
    else:
        data = bytes(body)

    if not data:
        raise DecodeError("Empty image data")
    if len(data) > max_body_bytes:
        raise SizeLimitError(f"Request body of {len(data)} bytes exceeds {max_body_bytes} bytes")
    return data


def optimise_bytes(data: bytes, config: ServerConfig, encoder: AvifEncoder) -> ProcessingResult:
    asset = SourceAsset(data=data, media_type=sniff_media_type(data), name="image")
    controller = QualityController(encoder, config.quality)
    return run_item(asset, controller, config.normalize, OutputConfig())


def request_executor() -> ThreadPoolExecutor:
    """进程内共享的单线程执行器，超时的编码不会叠加出更多线程。"""

    global _REQUEST_EXECUTOR
    with _EXECUTOR_LOCK:
        if _REQUEST_EXECUTOR is None:
            _REQUEST_EXECUTOR = ThreadPoolExecutor(max_workers=1, thread_name_prefix="avif-request")
        return _REQUEST_EXECUTOR


def run_with_timeout(data: bytes, config: ServerConfig, encoder: AvifEncoder) -> ProcessingResult:
    """在共享工作线程中执行两轮编码，超出时间预算则抛出 ProcessingTimeoutError。

    预算包含排队等待的时间；超时后尚未开始的任务会被取消。
    """

    future = request_executor().submit(optimise_bytes, data, config, encoder)
    try:
        return future.result(timeout=config.timeout_seconds)
    except FutureTimeoutError as exc:
        future.cancel()
        raise ProcessingTimeoutError(f"Processing exceeded {config.timeout_seconds:g}s") from exc


def handle_optimise_request(
    method: str,
    body: bytes | str | None,
    *,
    is_base64: bool = False,
    config: Optional[ServerConfig] = None,
    encoder: Optional[AvifEncoder] = None,
) -> OptimiseResponse:
    """处理一次压缩请求，任何失败都只影响本次请求。"""

    config = config or ServerConfig()
    details = config.expose_error_details
    LOGGER.info(
        "Received request method=%s body_length=%s base64=%s",
        method,
        len(body) if body else 0,
        is_base64,
    )

    if method.upper() != "POST":
        return error_response(405, "Method Not Allowed")

    try:
        data = decode_body(body, is_base64=is_base64, max_body_bytes=config.max_body_bytes)
    except SizeLimitError as exc:
        LOGGER.warning("请求体过大：%s", exc)
        return error_response(413, "Payload Too Large", str(exc) if details else None)
    except DecodeError as exc:
        LOGGER.warning("请求体无效：%s", exc)
        return error_response(400, "Invalid image data", str(exc) if details else None)

    try:
        result = run_with_timeout(data, config, encoder or PillowAvifEncoder())
    except DecodeError as exc:
        LOGGER.warning("图像解析失败：%s", exc)
        return error_response(400, "Failed to process image", str(exc) if details else None)
    except ProcessingTimeoutError as exc:
        LOGGER.error("处理超时：%s", exc)
        return error_response(TIMEOUT_STATUS, "Processing timed out", str(exc) if details else None)
    except EncodeError as exc:
        LOGGER.error("编码失败：%s", exc)
        return error_response(500, "Failed to encode image", str(exc) if details else None)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Unexpected error")
        return error_response(500, "Internal server error", str(exc) if details else None)

    LOGGER.info(
        "Optimised %d -> %d bytes (%s, %d pass)",
        result.original_size,
        result.size,
        format_percent(result.reduction),
        result.passes,
    )
    return OptimiseResponse(
        status_code=200,
        body=result.data,
        media_type=AVIF_MEDIA_TYPE,
        headers={
            "X-Original-Size": str(result.original_size),
            "X-Optimized-Size": str(result.size),
            "X-Size-Reduction": format_percent(result.reduction),
            "X-Passes": str(result.passes),
            "X-Quality": str(result.quality),
        },
    )
