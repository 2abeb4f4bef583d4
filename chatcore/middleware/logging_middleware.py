"""
API 요청 로깅 미들웨어

모든 API 요청과 응답을 구조화된 형태로 로깅합니다.
"""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from chatcore.core.logging import clear_request_context, get_logger, log_api_call, set_request_context
from chatcore.utils.auth import extract_bearer_token, user_id_from_token

logger = get_logger(__name__)

SENSITIVE_HEADERS = {"authorization", "cookie", "x-api-key"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """API 요청/응답 로깅 미들웨어"""

    def __init__(self, app, log_requests: bool = True, slow_request_threshold_ms: float = 1000):
        super().__init__(app)
        self.log_requests = log_requests
        self.slow_request_threshold_ms = slow_request_threshold_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        # 토큰이 유효한 경우에만 사용자 ID 기록
        user_id = user_id_from_token(extract_bearer_token(request.headers.get("authorization")))
        set_request_context(request_id, user_id)

        if self.log_requests:
            self._log_request(request, request_id, user_id)

        try:
            response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000

            log_api_call(
                logger,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                user_id=user_id,
                request_id=request_id,
                query_params=dict(request.query_params) if request.query_params else None,
                client_ip=self._get_client_ip(request)
            )

            if duration_ms > self.slow_request_threshold_ms:
                logger.warning(
                    f"Slow request detected: {request.method} {request.url.path}",
                    extra={
                        "event_type": "slow_request",
                        "duration_ms": duration_ms,
                        "threshold_ms": self.slow_request_threshold_ms
                    }
                )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "event_type": "api_error",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": duration_ms,
                    "error": str(e),
                    "error_type": type(e).__name__
                },
                exc_info=True
            )
            raise

        finally:
            clear_request_context()

    def _log_request(self, request: Request, request_id: str, user_id: Optional[str] = None):
        """요청 정보 로깅 (민감한 헤더 제외)"""
        filtered_headers = {
            name: "***REDACTED***" if name.lower() in SENSITIVE_HEADERS else value
            for name, value in request.headers.items()
        }

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "event_type": "request_started",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "headers": filtered_headers,
                "client_ip": self._get_client_ip(request)
            }
        )

    def _get_client_ip(self, request: Request) -> str:
        """클라이언트 IP 주소 추출"""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        if request.client is not None:
            return request.client.host

        return "unknown"
