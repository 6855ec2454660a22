# pim/core/database.py

"""
PIM 서비스의 DB 엔진과 AsyncSession 공급을 맡는 모듈입니다.

- SQLModel의 비동기 엔진을 설정합니다 (PostgreSQL: asyncpg, SQLite: aiosqlite).
- 요청 단위 세션 제너레이터(get_session)를 제공합니다.
- ARQ 태스크와 CLI 스크립트가 쓰는 세션 컨텍스트 관리자를 제공합니다.
- 개발 환경용 테이블 생성 함수를 포함합니다.
- SQLite에서도 SAVEPOINT(begin_nested)가 동작하도록 이벤트 리스너를 등록합니다.
"""

import logging
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core.config import settings

# =============================================================================
# 모든 도메인 모델 임포트
# =============================================================================
# 모든 SQLModel 클래스가 SQLModel.metadata에 등록되도록 명시적으로 임포트합니다.
from pim.domains import models  # noqa: F401

logger = logging.getLogger(__name__)


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """
    pysqlite/aiosqlite 드라이버는 기본적으로 BEGIN을 지연 발행하여
    SAVEPOINT가 올바르게 동작하지 않습니다.
    드라이버의 트랜잭션 처리를 끄고 SQLAlchemy가 직접 BEGIN을 발행하도록 합니다.
    """
    @event.listens_for(async_engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    URL의 드라이버에 맞춰 비동기 엔진을 생성합니다.
    SQLite는 풀 크기 옵션을 지원하지 않으므로 PostgreSQL에서만 풀 옵션을 적용합니다.
    """
    if is_sqlite_url(url):
        async_engine = create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        enable_sqlite_savepoints(async_engine)
        return async_engine

    return create_async_engine(
        url,
        echo=echo,
        pool_recycle=3600,  # 1시간마다 연결 재활용
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


# 프로세스 전역 엔진 (settings.DATABASE_URL)
engine: AsyncEngine = build_engine(settings.DATABASE_URL.get_secret_value(), echo=settings.DEBUG_MODE)

# commit 후에도 객체 속성을 읽을 수 있도록 expire_on_commit 을 끕니다.
AsyncSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# =============================================================================
# 개발용 테이블 생성
# =============================================================================
async def create_db_and_tables() -> None:
    """
    SQLModel 메타데이터의 테이블을 한 번에 만듭니다.
    운영 DB는 Alembic 마이그레이션으로 관리하고, 이 함수는 로컬 개발에서만 씁니다.
    """
    logger.info("데이터베이스 테이블 생성을 시작합니다.")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("데이터베이스 테이블 생성이 끝났습니다.")


# =============================================================================
# 세션 공급자
# =============================================================================
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    요청마다 세션 하나를 열어 주고, 응답 후 닫습니다.
    """
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_async_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    요청 바깥(arq 태스크, CLI)에서 쓰는 세션 컨텍스트입니다.
    블록이 정상 종료되면 commit, 예외가 나면 rollback 후 다시 던집니다.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
