# pim/core/dependencies.py

"""
FastAPI 애플리케이션의 의존성 주입(Dependency Injection)을 정의하는 모듈입니다.

- 데이터베이스 세션 관리 (get_db_session).
- 요청 단위 서비스 객체 생성 (get_attribute_binding_service).
"""

from typing import AsyncGenerator

from fastapi import Depends
from sqlmodel.ext.asyncio.session import AsyncSession

# 실제 데이터베이스 세션 제너레이터 임포트
from pim.core.database import get_session as get_main_app_session
from pim.domains.attr.services import AttributeBindingService


# --- 데이터베이스 세션 의존성 주입 ---
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 의존성 주입을 위한 비동기 데이터베이스 세션 제너레이터입니다.
    테스트에서는 app.dependency_overrides[get_session] 으로 교체됩니다.
    """
    async for session in get_main_app_session():
        yield session


def get_attribute_binding_service(
    db: AsyncSession = Depends(get_db_session),
) -> AttributeBindingService:
    """요청마다 세션을 주입한 바인딩 서비스를 생성합니다."""
    return AttributeBindingService(db)
