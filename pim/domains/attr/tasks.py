# pim/domains/attr/tasks.py

"""
속성 상속 유지보수용 ARQ 태스크.

워커에서 실행될 때는 ctx 에 세션이 없으므로 독립 세션을 열고,
Redis 풀이 없어 요청 안에서 동기 실행될 때는 ctx['db'] 로 요청 세션을 전달받습니다.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core.database import get_async_session_context
from pim.domains.attr.services import AttributeBindingService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _task_session(ctx: Dict[str, Any]) -> AsyncGenerator[AsyncSession, None]:
    db = ctx.get("db")
    if db is not None:
        yield db
        return
    async with get_async_session_context() as session:
        yield session


async def rebuild_inheritance_for_all_categories_task(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """
    살아있는 모든 카테고리에 대해 누락된 상속 바인딩을 다시 물질화합니다.
    """
    logger.info("ARQ 태스크 시작: 전체 카테고리 상속 재구축")
    async with _task_session(ctx) as db:
        summary = await AttributeBindingService(db).rebuild_inheritance_for_all_categories()
    logger.info("ARQ 태스크 완료: %s", summary)
    return {"status": "ok", **summary}


async def validate_inheritance_consistency_task(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """
    모든 카테고리의 상속 정합성을 점검하고 어긋난 카테고리를 로그로 남깁니다 (수정하지 않음).
    """
    logger.info("ARQ 태스크 시작: 상속 정합성 점검")
    async with _task_session(ctx) as db:
        report = await AttributeBindingService(db).find_inconsistent_categories()

    for category_id, issues in report.items():
        logger.warning("상속 정합성 불일치: category=%s, %d건: %s", category_id, len(issues), "; ".join(issues))
    if not report:
        logger.info("상속 정합성 점검 완료: 모든 카테고리가 일치합니다.")
    return {"status": "ok", "inconsistent_categories": len(report)}
