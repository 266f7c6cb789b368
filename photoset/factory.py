"""
FastAPI application factory for the Photoset service.
"""

import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .api.router import router
from .core.config import Settings, get_settings
from .core.database import close_db, init_db
from .core.flags import get_flags
from .core.redis import close_redis
from .prompts.guardrails import get_injector_names
from .services.llm import close_client

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO), format=LOG_FORMAT)


def mount_uploads(app: FastAPI, settings: Settings) -> None:
    """Serve uploads and locally stored results. Skipped if the root is missing."""
    root = Path(settings.storage_root)
    if not root.is_dir():
        logger.warning("Storage root %s does not exist; %s is not served", root, settings.public_upload_prefix)
        return
    app.mount(settings.public_upload_prefix.rstrip("/"), StaticFiles(directory=str(root)), name="uploads")


def create_app(init_database: bool = True) -> FastAPI:
    settings = get_settings()
    is_dev = settings.env == "development"

    app = FastAPI(
        title="Photoset",
        description="Multi-angle consistent product photo generation",
        version="1.0.0",
        docs_url="/docs" if is_dev else None,
        redoc_url="/redoc" if is_dev else None,
    )

    allowed = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed or ["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )
    mount_uploads(app, settings)
    app.include_router(router)

    @app.on_event("startup")
    async def startup():
        configure_logging(settings)
        if init_database:
            await init_db()
        flags = get_flags()
        logger.info(
            "Photoset ready (env=%s, storage=%s, realtime=%s, logo=%s, guardrails=[%s], insights=%s, debug_prompt=%s)",
            settings.env,
            "s3" if flags.use_s3 else "local",
            flags.use_redis,
            flags.use_logo_overlay,
            ", ".join(get_injector_names()) if flags.use_domain_guardrails else "off",
            flags.use_resource_insights,
            flags.debug_prompt,
        )

    @app.on_event("shutdown")
    async def shutdown():
        await close_client()
        await close_redis()
        await close_db()
        logger.info("Photoset stopped")

    return app
