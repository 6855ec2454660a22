# pim/domains/cat/__init__.py

"""
FastAPI 애플리케이션의 'cat' 도메인 패키지입니다.

'cat' 도메인은 상품 카테고리 트리를 관리합니다.
카테고리는 parent_id 포인터로 트리를 구성하며, 속성 상속 엔진('attr' 도메인)은
이 패키지의 트리 조회기(tree.py)를 통해서만 카테고리를 읽습니다.

주요 서브모듈:
- `models.py`: categories 테이블에 매핑되는 SQLModel 정의.
- `schemas.py`: 요청 및 응답 유효성 검사용 Pydantic 모델.
- `tree.py`: 재귀 CTE 기반의 읽기 전용 트리 조회기 (children / descendants / ancestor path).
- `crud.py`: 카테고리 생성, 수정, 이동(level 재계산), 삭제 로직.
- `routers.py`: 'cat' 도메인 API 엔드포인트 정의.
"""

__title__ = "PIM Category Domain"
__description__ = "Manages the product category tree."
__version__ = "0.1.0"
__all__ = []
