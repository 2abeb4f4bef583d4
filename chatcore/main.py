from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatcore.api import include_routers
from chatcore.core.config import settings
from chatcore.core.logging import get_logger, setup_logging
from chatcore.database import MongoChatStore, close_databases, init_databases
from chatcore.middleware.error_handler import register_exception_handlers
from chatcore.middleware.logging_middleware import LoggingMiddleware
from chatcore.services import ServiceContainer

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    db = await init_databases()
    container = ServiceContainer(MongoChatStore(db), settings)
    await container.start()
    app.state.container = container
    logger.info(f"{settings.app_name} {settings.version} started")
    yield
    # Shutdown
    await container.stop()
    await close_databases()
    logger.info(f"{settings.app_name} stopped")


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

    register_exception_handlers(app)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_routers(app)
    return app


app = create_app()


@app.get("/")
async def root():
    return {"service": settings.app_name, "version": settings.version}
