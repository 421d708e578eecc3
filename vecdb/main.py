from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from vecdb.api.middleware import RequestLoggingMiddleware
from vecdb.api.routes_collections import router as collections_router
from vecdb.config import settings

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


app = FastAPI(title="Vector Search Service", version="0.1.0")

app.add_middleware(RequestLoggingMiddleware)


@app.on_event("startup")
def startup_event() -> None:
    configure_logging()
    logger.info("Vector search service ready on %s:%d", settings.app_host, settings.app_port)


@app.get("/health")
def healthcheck():
    return {"status": "ok"}


app.include_router(collections_router)


def run() -> None:
    configure_logging()
    uvicorn.run(app, host=settings.app_host, port=settings.app_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
