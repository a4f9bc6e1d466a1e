from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI
from loguru import logger

from bgremoval.core.config import Settings
from bgremoval.dependencies.container import Container


def build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = Container.from_settings(settings)
        await container.start()
        app.state.container = container
        logger.info(f"{settings.app_name} started ({settings.app_env}, port {settings.port})")

        try:
            yield
        finally:
            await container.stop()
            logger.info(f"{settings.app_name} stopped")

    return lifespan
