"""
Map domain errors to HTTP responses.

Every SettlementError renders as
    {"error": <category>, "code": <code>, "message": ..., "detail": {...}}
with the status code of its category. Storage errors that escape a unit of
work are logged and answered with a generic 500; their text never reaches
the client.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from settlement.core.exceptions import SettlementError
from settlement.core.logging import get_logger

logger = get_logger(__name__)


async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    logger.info("domain_error", category=exc.category, code=exc.code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("storage_error", error_type=type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "InternalError", "code": "StorageError", "message": "Internal server error", "detail": {}},
    )


EXCEPTION_HANDLERS = {
    SettlementError: settlement_error_handler,
    SQLAlchemyError: storage_error_handler,
}


def register_exception_handlers(app):
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
