from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import structlog

from src.core.observability import capture_exception
from src.domains.catalog.exceptions import CatalogError, PersistenceFailureError

logger = structlog.get_logger(__name__)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors()), "message": "Validation Error"},
    )


async def catalog_exception_handler(request: Request, exc: CatalogError):
    if isinstance(exc, PersistenceFailureError):
        logger.error("persistence_failure", path=request.url.path, error=exc.message)
        capture_exception(exc, tags={"path": request.url.path})
        # Never leak driver messages
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": [], "message": "Could not save changes"},
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": jsonable_encoder(exc.detail), "message": exc.message},
    )
