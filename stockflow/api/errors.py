# stockflow/api/errors.py
from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stockflow.api.problem import make_problem, problem_from_error
from stockflow.services.inventory_errors import InventoryError

logger = logging.getLogger("stockflow.api")


async def inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status, content=problem_from_error(exc))


async def validation_error_handler(_req: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"type": "validation", "path": ".".join(str(p) for p in err.get("loc", ())), "reason": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=make_problem(
            status_code=422,
            error_code="VALIDATION_ERROR",
            message="request body failed validation",
            details=details,
        ),
    )


async def http_error_handler(_req: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "error_code" in exc.detail:
        content = exc.detail
    else:
        content = make_problem(status_code=exc.status_code, error_code="HTTP_ERROR", message=str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content)


async def unhandled_error_handler(_req: Request, exc: Exception) -> JSONResponse:
    logger.exception("UNHANDLED_EXC: %s", exc)
    return JSONResponse(
        status_code=500,
        content=make_problem(status_code=500, error_code="INTERNAL_ERROR", message="internal error"),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InventoryError, inventory_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
