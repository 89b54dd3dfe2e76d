from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .ws import cancel_all_sessions
from .ws import router as ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("webssh started")
    yield
    logger.info("webssh shutting down")
    n = cancel_all_sessions()
    if n:
        logger.info("Cancelled %d terminal session(s)", n)


app = FastAPI(title="webssh", version="0.1.0", lifespan=lifespan)

app.include_router(ws_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
