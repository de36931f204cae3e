"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from loguru import logger

from .env_config import get_config
from .memcore.service import MemoryCore
from .routes import init_memory_routes


def create_app(core: Optional[MemoryCore] = None) -> FastAPI:
    """
    Build the web application around a single MemoryCore.

    Args:
        core: Memory core to serve; built from environment configuration
            when omitted.

    Returns:
        FastAPI: Application whose lifespan starts and stops the core.
    """
    if core is None:
        core = MemoryCore(get_config().to_memory_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await core.start()
        try:
            yield
        finally:
            await core.stop()
            logger.info("Inkwell server shut down")

    app = FastAPI(title="Inkwell", lifespan=lifespan)
    app.state.memory_core = core
    app.include_router(init_memory_routes(core))
    return app
