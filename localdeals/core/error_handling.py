import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError

from localdeals.core.exceptions import DealsError
from localdeals.schemas.response_schemas import ResponseMessage

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    body = ResponseMessage[None](message=message)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def register_exception_handlers(app):

    @app.exception_handler(DealsError)
    async def deals_exception_handler(request: Request, exc: DealsError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError):
        logger.warning("Integrity error on %s: %s", request.url.path, exc.orig)
        return error_response(409, "Duplicate or conflicting record")

    @app.exception_handler(OperationalError)
    async def operational_exception_handler(request: Request, exc: OperationalError):
        logger.error("Database unavailable: %s", exc)
        return error_response(503, "Database unavailable, try again later")
