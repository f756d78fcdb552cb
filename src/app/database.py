import logging
import os
from urllib.parse import quote_plus  # URL 인코딩을 위해 import

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings

logger = logging.getLogger("classinsight.db")


def get_db_url() -> str:
    """
    환경 변수(.env)의 데이터베이스 연결 정보를 읽어 URL을 생성합니다.
    CI 환경이나 연결 정보가 없는 로컬 환경에서는 SQLite 메모리 DB를 사용합니다.
    """
    if settings.database_url:
        return settings.database_url

    # CI 환경 감지
    if os.getenv("CI") or os.getenv("GITHUB_ACTIONS"):
        return "sqlite:///:memory:"

    db_user = settings.db_user
    db_pass = settings.db_password
    db_host = settings.db_host
    db_port = settings.db_port
    db_name = settings.db_name

    # 필수 환경 변수 검증
    if not all([db_user, db_pass, db_host, db_port, db_name]):
        if settings.environment == "production":
            raise RuntimeError("Missing required database environment variables")
        logger.warning(
            "Missing database environment variables, using SQLite for testing"
        )
        return "sqlite:///:memory:"

    # URL 파싱 오류 방지를 위해 사용자 이름과 비밀번호를 인코딩합니다.
    safe_user = quote_plus(db_user)
    safe_pass = quote_plus(db_pass)

    return f"postgresql://{safe_user}:{safe_pass}@{db_host}:{db_port}/{db_name}"


def build_engine(url: str):
    """URL 종류에 맞춰 SQLAlchemy 엔진을 생성합니다."""
    if url.startswith("sqlite"):
        # 메모리 DB는 백그라운드 분석 스레드와 같은 연결을 공유해야 합니다.
        if ":memory:" in url:
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


# 데이터베이스 URL 생성
DATABASE_URL = get_db_url()

engine = build_engine(DATABASE_URL)

# 세션 로컬 생성
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """데이터베이스 세션을 생성하고 반환합니다."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    요청 수명과 무관하게 동작하는 백그라운드 작업(전체 분석 실행)이
    자체 세션을 열 수 있도록 세션 팩토리를 반환합니다.
    """
    return SessionLocal
