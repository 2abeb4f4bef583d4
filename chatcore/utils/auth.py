from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from chatcore.core.config import settings


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: Optional[str]) -> Optional[dict]:
    """토큰을 검증하고 payload를 반환합니다. 실패 시 None."""
    if not token:
        return None
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """`Bearer <token>` 헤더 값에서 토큰만 추출"""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.removeprefix("Bearer ").strip() or None


def user_id_from_token(token: Optional[str]) -> Optional[str]:
    payload = decode_access_token(token)
    if not payload:
        return None
    user_id = payload.get("sub")
    return str(user_id) if user_id else None
