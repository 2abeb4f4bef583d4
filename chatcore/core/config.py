from typing import List, Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()  # .env 파일 로드


class Settings(BaseSettings):
    app_name: str = "chatcore"
    version: str = "0.1.0"
    debug: bool = False

    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "chat_db"

    # 필수 값 (기본값 없음)
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    cors_origins: List[str] = ["http://localhost:3000"]

    # 저장소 호출 하나당 최대 대기 시간 (초)
    store_timeout_seconds: float = 5.0
    enforce_group_admin: bool = True
    direct_chat_name: str = "sender"
    history_page_limit: int = 50

    log_dir: Optional[str] = None

    class Config:
        env_file = ".env"


settings = Settings()
