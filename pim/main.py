# pim/main.py

import logging
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from arq import cron
from arq.connections import create_pool, RedisSettings
from redis.exceptions import RedisError

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import literal_column
from sqlalchemy.exc import SQLAlchemyError

# 핵심 설정 및 데이터베이스 모듈 임포트
from pim.core.config import settings
from pim.core.database import engine, get_session
from pim.core.exceptions import PIMError

from pim import API_PREFIX

# 태스크 모듈 임포트
from pim.core import tasks as core_tasks
from pim.domains.attr import tasks as attr_tasks

# 도메인 라우터 임포트
from pim.domains.cat.routers import router as cat_router
from pim.domains.attr.routers import router as attr_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# ARQ 워커가 실행할 태스크 함수 목록
worker_functions = [
    core_tasks.health_check_database_task,
    attr_tasks.rebuild_inheritance_for_all_categories_task,
    attr_tasks.validate_inheritance_consistency_task,
]


# ARQ 워커 설정 클래스 (arq pim.main.ArqWorkerSettings 로 실행)
class ArqWorkerSettings:
    redis_settings = RedisSettings(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
    functions = worker_functions
    cron_jobs = [
        cron(
            core_tasks.health_check_database_task,
            name="daily_db_health_check",
            hour={0},
            minute={0},
            timeout=300,
            keep_result=600,
        ),
        cron(
            attr_tasks.validate_inheritance_consistency_task,
            name="daily_inheritance_consistency_scan",
            hour={settings.CONSISTENCY_SCAN_HOUR},
            minute={0},
            timeout=1800,
            keep_result=3600,
        ),
    ]


# -- 애플리케이션 수명 주기 이벤트 핸들러 --
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI 애플리케이션의 수명 주기 이벤트(데이터베이스, ARQ Redis)를 함께 처리합니다.
    Redis에 연결할 수 없으면 app.state.redis 를 None 으로 두고,
    재구축 요청은 요청 안에서 동기로 처리됩니다.
    """
    logger.info("FastAPI 애플리케이션 시작 중...")
    logger.info("데이터베이스 초기화/마이그레이션 확인 완료. (Alembic 사용)")

    try:
        logger.info("ARQ Redis 커넥션 풀을 생성합니다...")
        app.state.redis = await create_pool(ArqWorkerSettings.redis_settings)
        logger.info("ARQ Redis 커넥션 풀 생성 완료.")
    except (RedisError, OSError) as e:
        logger.warning("ARQ Redis 연결 실패, 백그라운드 작업 없이 실행합니다: %s", e)
        app.state.redis = None

    yield  # 애플리케이션 실행

    logger.info("FastAPI 애플리케이션 종료 중...")
    if app.state.redis:
        await app.state.redis.close()
        logger.info("ARQ Redis 연결 풀 종료 완료.")

    await engine.dispose()
    logger.info("데이터베이스 연결 풀 종료 완료.")


# -- FastAPI 애플리케이션 인스턴스 생성 --
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)
app.state.redis = None


# -- 도메인 예외 핸들러 --
# 서비스 계층의 도메인 예외를 HTTP 상태 코드로 변환합니다.
@app.exception_handler(PIMError)
async def pim_error_handler(request: Request, exc: PIMError):
    if exc.status_code >= 500:
        logger.error("%s %s 처리 중 오류: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("%s %s 처리 중 데이터베이스 오류", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Database error"},
    )


# -- CORS 미들웨어 설정 --
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -- 도메인 라우터 포함 --
app.include_router(cat_router, prefix=f"{API_PREFIX}/cat")
app.include_router(attr_router, prefix=f"{API_PREFIX}/attr")


# -- 루트 엔드포인트 --
@app.get("/", summary="API Root", response_description="Welcome message and documentation link.")
async def read_root():
    """
    PIM API의 루트 엔드포인트입니다.
    API의 시작점을 알리고 문서 링크를 제공합니다.
    """
    return {"message": "Welcome to PIM API. Visit /docs for interactive API documentation."}


# -- 헬스 체크 엔드포인트 --
@app.get("/health-check", summary="Health Check", response_description="Status of the application and database connection.")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    애플리케이션의 헬스 체크 엔드포인트입니다.
    데이터베이스 연결을 테스트하여 서비스의 정상 작동 여부를 확인합니다.
    """
    try:
        result = await session.exec(select(literal_column("1")))
        if result.first():
            return {"status": "ok", "database_connection": "successful"}
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database connection error during health check: {e}",
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Database health check failed: No result from test query",
    )
