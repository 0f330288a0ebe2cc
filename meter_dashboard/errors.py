# meter_dashboard/errors.py
import logging
from typing import Dict
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class FilterValidationError(Exception):
    """Malformed filter input, raised before any query runs."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


class EmptyResult(Exception):
    """The filter can match nothing, so no query should be issued."""


class UpstreamStoreError(Exception):
    """A database or document store call failed."""


class ConflictError(Exception):
    pass


async def _filter_validation_handler(request: Request, exc: FilterValidationError):
    return JSONResponse({"error": "Invalid filter", "details": exc.errors}, status_code=422)


async def _upstream_handler(request: Request, exc: UpstreamStoreError):
    logger.error("upstream store error on %s: %s", request.url.path, exc, exc_info=exc.__cause__ or exc)
    return JSONResponse({"error": "Upstream store error"}, status_code=500)


async def _conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse({"error": str(exc)}, status_code=409)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": "Invalid input", "details": jsonable_encoder(exc.errors())}, status_code=422)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(FilterValidationError, _filter_validation_handler)
    app.add_exception_handler(UpstreamStoreError, _upstream_handler)
    app.add_exception_handler(ConflictError, _conflict_handler)
