"""FastAPI application factory.

Assembles CORS and all API routers.  ``assignflow/main.py`` re-exports
the app object.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assignflow.api.routes.analytics import router as analytics_router
from assignflow.api.routes.delegations import router as delegations_router
from assignflow.api.routes.health import router as health_router
from assignflow.api.routes.routing import router as routing_router
from assignflow.api.routes.rules import router as rules_router
from assignflow.core.logging import setup_logging
from assignflow.core.settings import get_settings


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    yield


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(rules_router)
app.include_router(routing_router)
app.include_router(delegations_router)
app.include_router(analytics_router)
