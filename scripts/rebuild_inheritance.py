# flake8: noqa
# scripts/rebuild_inheritance.py

import asyncio
from typing import Optional

import typer

from pim.core.database import create_db_and_tables, engine, get_async_session_context
from pim.core.exceptions import NotFoundError
from pim.domains.attr.services import AttributeBindingService

cli = typer.Typer(help="카테고리 속성 상속 정합성 점검 및 재구축 도구")


async def run_rebuild(category_id: Optional[int]) -> None:
    async with get_async_session_context() as db:
        service = AttributeBindingService(db)
        if category_id is None:
            summary = await service.rebuild_inheritance_for_all_categories()
            typer.echo(f"전체 재구축 완료: 카테고리 {summary['categories']}개, 상속 바인딩 {summary['inserted']}개 삽입")
        else:
            inserted = await service.rebuild_category_inheritance(category_id)
            typer.echo(f"카테고리 {category_id} 재구축 완료: 상속 바인딩 {inserted}개 삽입")
    await engine.dispose()


async def run_validate(category_id: Optional[int]) -> int:
    """불일치가 발견된 카테고리 수를 반환합니다."""
    async with get_async_session_context() as db:
        service = AttributeBindingService(db)
        if category_id is None:
            report = await service.find_inconsistent_categories()
        else:
            is_consistent, issues = await service.validate_inheritance_consistency(category_id)
            report = {} if is_consistent else {category_id: issues}
    await engine.dispose()

    for cid, issues in report.items():
        typer.echo(f"[카테고리 {cid}] 불일치 {len(issues)}건")
        for issue in issues:
            typer.echo(f"  - {issue}")
    if not report:
        typer.echo("모든 카테고리의 상속 바인딩이 일치합니다.")
    return len(report)


@cli.command()
def rebuild(
    category_id: Optional[int] = typer.Option(
        None, '--category-id', '-c',
        help="재구축할 카테고리 ID입니다. 생략하면 전체 카테고리를 재구축합니다."
    ),
):
    """
    누락된 상속 바인딩을 다시 물질화합니다. 이미 있는 행은 건드리지 않습니다.
    """
    try:
        asyncio.run(run_rebuild(category_id))
    except NotFoundError as e:
        typer.echo(f"오류: {e}")
        raise typer.Exit(code=1)


@cli.command()
def validate(
    category_id: Optional[int] = typer.Option(
        None, '--category-id', '-c',
        help="점검할 카테고리 ID입니다. 생략하면 전체 카테고리를 점검합니다."
    ),
):
    """
    상속 정합성을 점검합니다 (수정하지 않음). 불일치가 있으면 종료 코드 1을 반환합니다.
    """
    try:
        inconsistent = asyncio.run(run_validate(category_id))
    except NotFoundError as e:
        typer.echo(f"오류: {e}")
        raise typer.Exit(code=1)
    if inconsistent:
        raise typer.Exit(code=1)


async def run_init_db() -> None:
    await create_db_and_tables()
    await engine.dispose()


@cli.command("init-db")
def init_db():
    """
    개발용 DB에 테이블을 만듭니다. 운영 DB는 alembic upgrade head 를 사용합니다.
    """
    asyncio.run(run_init_db())
    typer.echo("테이블 생성 완료")


if __name__ == "__main__":
    cli()
