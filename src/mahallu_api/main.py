"""
Main application module for Mahallu API.

This module sets up the FastAPI application with lifespan management
(database connection, indexes, audit drain), CORS, the activity logger,
the error envelope handlers and the API routers.
"""

from contextlib import asynccontextmanager
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from mahallu_api import __version__
from mahallu_api.config import settings
from mahallu_api.database import db_manager
from mahallu_api.managers.audit_manager import audit_dispatcher
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.middleware.activity_logger import ActivityLoggerMiddleware
from mahallu_api.routes import (
    families_router,
    health_router,
    member_user_router,
    members_router,
    tenants_router,
    users_router,
)
from mahallu_api.utils.error_handling import register_exception_handlers

logger = get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Connects to MongoDB and ensures indexes on startup; on shutdown waits for
    pending activity writes and disconnects.
    """
    startup_start_time = time.time()
    logger.info("Starting %s %s (env=%s)", settings.APP_NAME, __version__, settings.ENV)

    await db_manager.connect()
    await db_manager.create_indexes()
    logger.info("Startup completed in %.3fs", time.time() - startup_start_time)

    yield

    shutdown_start_time = time.time()
    logger.info("Shutting down...")
    await audit_dispatcher.drain()
    await db_manager.disconnect()
    logger.info("Shutdown completed in %.3fs", time.time() - shutdown_start_time)


app = FastAPI(
    title="Mahallu API",
    description="Multi-tenant community records administration: tenants, users, families and members.",
    version=__version__,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "tenants", "description": "Community (tenant) administration"},
        {"name": "users", "description": "User accounts, including member-linked accounts"},
        {"name": "families", "description": "Household records"},
        {"name": "members", "description": "Individual member records"},
        {"name": "System", "description": "System health and monitoring endpoints"},
    ],
)

register_exception_handlers(app)

app.add_middleware(ActivityLoggerMiddleware)
if settings.CORS_ENABLED:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

routers_config = [
    ("health", health_router),
    ("tenants", tenants_router),
    ("users", users_router),
    ("families", families_router),
    ("members", members_router),
    ("member-user", member_user_router),
]
for router_name, router in routers_config:
    app.include_router(router, prefix=settings.API_PREFIX)
    logger.debug("Included %s router under %s", router_name, settings.API_PREFIX)

Instrumentator(should_group_status_codes=True, should_ignore_untemplated=True).instrument(app).expose(
    app, include_in_schema=False, endpoint="/metrics"
)


def run():
    uvicorn.run("mahallu_api.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG, log_level="info")


if __name__ == "__main__":
    run()
