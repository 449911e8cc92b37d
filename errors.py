import enum
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class ShopError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ShopError):
    status_code = 404


class ConflictError(ShopError):
    """Uniqueness or admin-limit violation."""

    status_code = 400


class ValidationError(ShopError):
    status_code = 400


class AuthFailure(str, enum.Enum):
    INVALID_USERNAME = "InvalidUsername"
    INVALID_PASSWORD = "InvalidPassword"


class AuthError(ShopError):
    status_code = 401

    _messages = {
        AuthFailure.INVALID_USERNAME: "Invalid username",
        AuthFailure.INVALID_PASSWORD: "Invalid password",
    }

    def __init__(self, reason: AuthFailure):
        super().__init__(self._messages[reason])
        self.reason = reason


class OperationFailedError(ShopError):
    """An unexpected failure inside a multi-step operation; the underlying message is kept."""

    status_code = 500


async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity violation on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(status_code=400, content={"detail": "Operation violates a data constraint"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
