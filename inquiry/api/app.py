"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single SQLite connection (shared across all
requests via ``request.app.state.db``), initialises the schema and opens the
blob store (``request.app.state.blobs``).  On shutdown it closes the
connection cleanly.

Routers
-------
Every graph lives in its own collection, so node routes are nested under
the graph they belong to::

    /graphs                                 — catalogue, root, migrations, believes
    /graphs/{collection}/nodes/{id}         — node, children, view, propositions
    /graphs/{collection}/nodes/{id}/...     — ratings, generation, explanation, images
    /blobs/{key}                            — image downloads

Errors
------
Service errors are reported as ``{"detail": "..."}`` with the status from
:data:`ERROR_STATUS`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inquiry import __version__
from inquiry.config import configure_logging
from inquiry.db import get_connection, init_db
from inquiry.errors import (
    AIRatingExistsError,
    GatewayError,
    GraphInitTimeoutError,
    GraphNotFoundError,
    InquiryError,
    InvalidRatingError,
    InvalidStateError,
    InvalidTransitionError,
    NodeNotFoundError,
    ParseError,
    TemplateNotFoundError,
)
from inquiry.storage.blobs import BlobStore

from inquiry.api.routers import explanation as explanation_router
from inquiry.api.routers import generation as generation_router
from inquiry.api.routers import graphs as graphs_router
from inquiry.api.routers import images as images_router
from inquiry.api.routers import nodes as nodes_router
from inquiry.api.routers import ratings as ratings_router

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[InquiryError], int] = {
    NodeNotFoundError: 404,
    GraphNotFoundError: 404,
    InvalidTransitionError: 422,
    InvalidRatingError: 422,
    InvalidStateError: 422,
    AIRatingExistsError: 409,
    ParseError: 502,
    GatewayError: 502,
    TemplateNotFoundError: 500,
    GraphInitTimeoutError: 504,
}

NODE_PREFIX = "/graphs/{collection}/nodes"


def status_for(exc: InquiryError) -> int:
    for cls, status in ERROR_STATUS.items():
        if isinstance(exc, cls):
            return status
    return 500


async def _inquiry_error_handler(request: Request, exc: InquiryError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the DB and blob store on startup and close the DB on shutdown."""
    configure_logging()
    conn = get_connection()
    init_db(conn)
    app.state.db = conn
    app.state.blobs = BlobStore()
    try:
        yield
    finally:
        conn.close()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="Inquiry Complex API",
        description=(
            "REST interface for dialectical argument graphs: browse questions, "
            "theses, antitheses and syntheses, rate them, generate new nodes "
            "with a language model, stream explanations and attach images."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(InquiryError, _inquiry_error_handler)  # type: ignore[arg-type]

    app.include_router(graphs_router.router, prefix="/graphs", tags=["graphs"])
    app.include_router(nodes_router.router, prefix=NODE_PREFIX, tags=["nodes"])
    app.include_router(ratings_router.router, prefix=NODE_PREFIX, tags=["ratings"])
    app.include_router(generation_router.router, prefix=NODE_PREFIX, tags=["generation"])
    app.include_router(explanation_router.router, prefix=NODE_PREFIX, tags=["explanation"])
    app.include_router(images_router.router, prefix=NODE_PREFIX, tags=["images"])
    app.include_router(images_router.blobs_router, prefix="/blobs", tags=["blobs"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn inquiry.api.app:app --reload
app = create_app()
