# 애플리케이션 로깅 설정

import logging
import sys

from app.core.config import settings

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging() -> None:
    """
    앱 전역 로깅 설정.

    - 루트 로거 레벨: LOG_LEVEL (기본 INFO)
    - stdout으로 출력 (컨테이너 로그 수집용)
    - 이미 Uvicorn 등이 핸들러를 붙였다면 레벨만 맞춤
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # 시끄러운 라이브러리 로그 줄이기
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
