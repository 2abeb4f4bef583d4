import traceback
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError
from starlette.middleware.base import BaseHTTPMiddleware

from chatcore.core.config import settings
from chatcore.core.errors import (
    BaseCustomException,
    ValidationError,
    create_error_response,
    create_validation_error_response
)
from chatcore.core.logging import get_logger

logger = get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    통합 에러 처리 미들웨어

    라우트 핸들러까지 전파된 드라이버 예외와 예상하지 못한 예외를 표준 에러 응답으로 변환합니다.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"MongoDB connection error: {type(e).__name__}: {e}")
            error_response = create_error_response(
                "mongodb_connection_error",
                "MongoDB connection failed",
                status.HTTP_503_SERVICE_UNAVAILABLE,
                {"detail": str(e) if settings.debug else None}
            )
            return JSONResponse(status_code=error_response.status_code, content=error_response.model_dump())

        except PyMongoError as e:
            logger.error(f"MongoDB operation error: {type(e).__name__}: {e}")
            error_response = create_error_response(
                "persistence_error",
                "Persistence operation failed",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                {"detail": str(e) if settings.debug else None}
            )
            return JSONResponse(status_code=error_response.status_code, content=error_response.model_dump())

        except Exception as e:
            error_detail = None
            if settings.debug:
                error_detail = {
                    "exception": str(e),
                    "type": type(e).__name__,
                    "traceback": traceback.format_exc()
                }

            logger.error(f"Unhandled exception: {type(e).__name__}: {e}", exc_info=True)
            error_response = create_error_response(
                "internal_server_error",
                "An unexpected error occurred",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                error_detail
            )
            return JSONResponse(status_code=error_response.status_code, content=error_response.model_dump())


async def custom_exception_handler(request: Request, exc: BaseCustomException):
    """커스텀 예외를 표준 형식으로 변환"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {exc.message}", extra={"path": request.url.path, "details": exc.details})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """요청 본문/쿼리 스키마 검증 실패 (422)"""
    validation_errors = [
        ValidationError(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            value=error.get("input")
        )
        for error in exc.errors()
    ]
    error_response = create_validation_error_response("Request validation failed", validation_errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response.model_dump(mode="json")
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """일반 HTTPException을 표준 형식으로 변환"""
    error_response = create_error_response(
        "http_error",
        exc.detail if isinstance(exc.detail, str) else "HTTP error occurred",
        exc.status_code,
        {"detail": exc.detail} if not isinstance(exc.detail, str) else None
    )
    return JSONResponse(status_code=exc.status_code, content=error_response.model_dump(), headers=exc.headers)


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(BaseCustomException, custom_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_middleware(ErrorHandlerMiddleware)
