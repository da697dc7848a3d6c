"""HTTP resolution endpoint.

Exposes the cascade as ``POST /analyze-product``:

  curl -X POST http://127.0.0.1:8000/analyze-product \\
       -H 'Content-Type: application/json' -d '{"code": "4901234567894"}'

Run with ``expiry-scanner serve`` or
``uvicorn expiry_scanner.server:create_app --factory``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ConfigError, InputError, UpstreamError
from .models import ScanInput
from .resolver import build_resolver

if TYPE_CHECKING:
    from .config import ScannerConfig
    from .resolver import ProductResolver

logger = logging.getLogger(__name__)

CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def _error(code: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "code": code},
    )


def create_app(
    config: ScannerConfig | None = None,
    resolver: ProductResolver | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    An explicit ``resolver`` wins over one built from ``config``.
    """
    if resolver is None:
        from .config import load_config

        resolver = build_resolver(config or load_config())

    app = FastAPI(title="Expiry Scanner")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=CORS_HEADERS,
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/analyze-product")
    async def analyze_product(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            return _error("invalid_input", "Request body must be JSON", 400)

        if not isinstance(body, dict):
            return _error("invalid_input", "Request body must be a JSON object", 400)

        code = body.get("code")
        image_ref = body.get("imageRef")
        if not isinstance(code, str) or not code.strip():
            return _error(
                "invalid_input",
                "Code is required and must be a non-empty string",
                400,
            )

        try:
            resolution = await resolver.resolve(
                ScanInput(code=code, image_ref=image_ref)
            )
        except InputError as e:
            return _error("invalid_input", str(e), 400)
        except ConfigError as e:
            logger.error("Inference provider is not configured: %s", e)
            return _error("not_configured", str(e), 500)
        except UpstreamError as e:
            logger.error("Inference provider call failed: %s", e)
            return _error("upstream_unavailable", "Failed to analyze product with AI", 500)
        except Exception:  # noqa: BLE001 - endpoint must answer with JSON
            logger.exception("Unexpected error in analyze-product")
            return _error("internal_error", "Internal server error", 500)

        return JSONResponse(status_code=200, content=resolution.result.to_dict())

    return app
