"""FastAPI 应用：以 HTTP 方式暴露请求模式。"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from avif_optimizer.core.config import ServerConfig
from avif_optimizer.processing.encoder import AvifEncoder, avif_supported
from avif_optimizer.server.handler import error_response, handle_optimise_request

LOGGER = logging.getLogger(__name__)

APP_VERSION = "0.1.0"
_TRUTHY = {"1", "true", "yes"}


def create_app(config: Optional[ServerConfig] = None, encoder: Optional[AvifEncoder] = None) -> FastAPI:
    config = config or ServerConfig.from_env()
    config.quality.validate()
    config.normalize.validate()

    app = FastAPI(title="AVIF Optimizer", version=APP_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Original-Size", "X-Optimized-Size", "X-Size-Reduction", "X-Passes", "X-Quality"],
    )

    @app.get("/api/status")
    def status() -> Dict[str, object]:
        return {"ok": True, "service": "avif-optimizer", "version": APP_VERSION, "avif": avif_supported()}

    @app.api_route("/optimise", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def optimise(request: Request) -> Response:
        declared = request.headers.get("content-length")
        if request.method == "POST" and declared and declared.isdigit():
            limit = config.max_body_bytes
            if _is_base64(request):
                limit = (limit * 4) // 3 + 4
            if int(declared) > limit:
                rejected = error_response(413, "Payload Too Large")
                return Response(content=rejected.body, status_code=413, media_type=rejected.media_type)

        body = await request.body()
        result = await run_in_threadpool(
            handle_optimise_request,
            request.method,
            body,
            is_base64=_is_base64(request),
            config=config,
            encoder=encoder,
        )
        return Response(
            content=result.body,
            status_code=result.status_code,
            media_type=result.media_type,
            headers=result.headers,
        )

    return app


def _is_base64(request: Request) -> bool:
    if request.query_params.get("base64", "").lower() in _TRUTHY:
        return True
    return request.headers.get("x-base64-encoded", "").lower() in _TRUTHY
