import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from assetsme.api.v1 import api_router
from assetsme.core.errors import register_exception_handlers
from assetsme.core.health import APP_VERSION
from assetsme.core.limiter import limiter
from assetsme.core.logging import configure_logging
from assetsme.core.response_envelope import register_response_envelope
from assetsme.core.settings import settings
from assetsme.middlewares.request_context import RequestContextMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.storage_provider == "local":
        Path(settings.local_upload_dir).mkdir(parents=True, exist_ok=True)
    logger.info(
        "Starting assets service environment=%s storage=%s",
        settings.environment,
        settings.storage_provider,
    )
    yield


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="AssetsMe Backend", version=APP_VERSION, lifespan=lifespan)
    register_exception_handlers(app)
    register_response_envelope(app)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
