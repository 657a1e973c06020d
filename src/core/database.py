"""데이터베이스 엔진 / 세션

운영은 PostgreSQL, 테스트는 SQLite(in-memory)를 사용합니다.
두 dialect 모두 ON CONFLICT와 partial unique index를 지원하므로
저장소 코드는 dialect_insert()로 분기합니다.
"""
from typing import Any, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from src.core.config import settings
from src.core.exceptions import DatabaseException
from src.core.logging import logger

Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """DB URL에 맞는 엔진 생성 (SQLite는 풀 옵션 미지원)"""
    options: dict[str, Any] = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(pool_recycle=300, pool_size=5, max_overflow=10)
    return create_engine(database_url, **options)


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """모델 테이블 생성 (운영 스키마는 alembic 마이그레이션이 기준)"""
    import src.repositories.models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {e}")
        raise DatabaseException(f"Failed to initialize database: {e}") from e
    logger.info(f"Database tables ready ({engine.dialect.name})")


def get_db() -> Generator[Session, None, None]:
    """FastAPI Dependency: 요청 단위 세션"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ping_database(db: Session) -> bool:
    """헬스 체크용 SELECT 1"""
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection error: {e}")
        return False


def dialect_insert(db: Session, model: Any):
    """ON CONFLICT 절을 지원하는 dialect별 INSERT 생성

    Raises:
        DatabaseException: 지원하지 않는 dialect
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise DatabaseException(f"Unsupported dialect for upsert: {dialect}")
