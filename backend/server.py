from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent

# Load .env only if exists (development fallback)
env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI  # noqa: E402
from starlette.middleware.cors import CORSMiddleware  # noqa: E402

from tapechart.config import APP_NAME, APP_VERSION, CORS_ORIGINS, ENABLE_TAPE_CHART_API  # noqa: E402
from tapechart.exception_handlers import register_exception_handlers  # noqa: E402
from tapechart.middleware.request_logging import RequestLoggingMiddleware  # noqa: E402
from tapechart.routers.tape_chart import router as tape_chart_router  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("tape-chart")


def create_app() -> FastAPI:
    app = FastAPI(title=APP_NAME, version=APP_VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    if ENABLE_TAPE_CHART_API:
        app.include_router(tape_chart_router)
    else:
        logger.info("Tape chart API disabled via ENABLE_TAPE_CHART_API")

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "service": "tape-chart"}

    return app


app = create_app()
