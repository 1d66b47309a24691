import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as v1_router
from backend.app.core.logging import configure_logging
from backend.services.exceptions import (
    InventoryError,
    InvalidState,
    NotFound,
    PersistenceConflict,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

configure_logging()

app = FastAPI(title="Seller Inventory Backend", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


def _status_for(exc: InventoryError) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (InvalidState, PersistenceConflict)):
        return 409
    if isinstance(exc, UpstreamUnavailable):
        return 503
    return 400


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    status_code = _status_for(exc)
    if status_code >= 500 or exc.retryable:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": exc.message, "retryable": exc.retryable},
    )
