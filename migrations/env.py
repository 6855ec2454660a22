# migrations/env.py

"""
PIM 스키마용 Alembic 환경 스크립트입니다.

- 비교 대상은 SQLModel.metadata 이며, cat/attr 모델을 임포트해 테이블을 등록합니다.
- DB URL은 alembic 설정에 없을 때 pim.core.config.settings 에서 읽습니다.
- SQLite 는 ALTER TABLE 이 제한되므로 batch 모드로 렌더링합니다.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from pim.core.config import settings
import pim.domains.cat.models  # noqa: F401
import pim.domains.attr.models  # noqa: F401

alembic_config = context.config

if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

if alembic_config.get_main_option("sqlalchemy.url") is None:
    alembic_config.set_main_option("sqlalchemy.url", settings.DATABASE_URL.get_secret_value())

database_url = alembic_config.get_main_option("sqlalchemy.url")
target_metadata = SQLModel.metadata


def _configure_options(dialect_name: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    """DB 연결 없이 SQL 스크립트만 출력합니다 (alembic upgrade --sql)."""
    dialect_name = database_url.split(":", 1)[0].split("+", 1)[0]
    context.configure(
        url=database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(dialect_name),
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(connection=connection, **_configure_options(connection.dialect.name))
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    # 마이그레이션은 단발성이므로 커넥션 풀을 쓰지 않습니다.
    migration_engine = create_async_engine(database_url, echo=settings.DEBUG_MODE, poolclass=pool.NullPool)
    try:
        async with migration_engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await migration_engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
