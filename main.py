# main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from artifacts.router import router as artifacts_router
from core.providers import init_providers, shutdown_providers
from core.settings import get_settings
from health.router import router as health_router

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    providers = init_providers(app)
    log.info(
        "Artifact gateway started: storage mode=%s bucket=%s",
        providers.manager.mode.value,
        providers.settings.storage.bucket,
    )
    try:
        yield
    finally:
        await shutdown_providers(app)


# ---------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().server.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Artifact Gateway", lifespan=lifespan)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------

app.include_router(health_router)
app.include_router(artifacts_router)


# ---------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------

@app.get("/")
async def root():
    return {"status": "ok", "message": "artifact gateway running"}


# ---------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------

if __name__ == "__main__":
    server = get_settings().server
    uvicorn.run(
        "main:app",
        host=server.host,
        port=server.port,
    )
