from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException

from .bot import NotifierBot
from .logging_config import setup_logging
from .settings import require_secrets, settings

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

_bot: NotifierBot | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    global _bot
    # Keep imports/tooling usable without .env, but fail fast when actually running.
    require_secrets()
    _bot = NotifierBot(settings)
    await _bot.start()
    logger.info("Waiting for new sales...")
    try:
        yield
    finally:
        await _bot.stop()
        _bot = None


app = FastAPI(title="Ledger notifier", lifespan=lifespan)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/status")
async def status() -> dict[str, Any]:
    if _bot is None:
        raise HTTPException(status_code=503, detail="Notifier not running")
    return _bot.status()
