"""
Error translation for the API: every failure becomes a JSON ``{error}`` body
"""

from contextlib import contextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import MicrofinanceError
from ..logging_config import get_logger


logger = get_logger("microfinance.api")


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers that render errors as ``{"error": message}``"""

    @app.exception_handler(MicrofinanceError)
    async def domain_error_handler(request: Request, exc: MicrofinanceError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        missing = any(error.get("type") == "missing" for error in exc.errors())
        message = "Missing fields" if missing else "Invalid payload"
        return JSONResponse(status_code=400, content={"error": message})


@contextmanager
def guarded(operation: str):
    """
    Let domain and HTTP errors through; log anything else and answer
    400 ``Invalid payload``.
    """
    try:
        yield
    except (MicrofinanceError, HTTPException):
        raise
    except Exception:
        logger.exception(f"{operation} failed")
        raise HTTPException(status_code=400, detail="Invalid payload")
