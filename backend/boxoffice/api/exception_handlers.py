"""Maps the BoxOfficeError hierarchy onto HTTP responses."""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from boxoffice.core.errors import BoxOfficeError
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)


async def box_office_error_handler(request: Request, exc: BoxOfficeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_error", code=exc.code.value, error=exc.message, **exc.context)
    else:
        logger.warning("request_rejected", code=exc.code.value, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
    )


EXCEPTION_HANDLERS = {
    BoxOfficeError: box_office_error_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app):
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
