# pim/domains/attr/__init__.py

"""
FastAPI 애플리케이션의 'attr' 도메인 패키지입니다.

'attr' 도메인은 속성 정의(Attribute), 카테고리-속성 바인딩(CategoryAttribute),
엔티티별 속성 값(AttributeValue)을 관리하며, 카테고리 트리를 따라
바인딩을 상속/전파하는 상속 엔진을 포함합니다.

주요 서브모듈:
- `models.py`: attributes, category_attributes, attribute_values 테이블 SQLModel 정의.
- `schemas.py`: 요청/응답 Pydantic 모델 (값 종류별 태그드 유니언 포함).
- `validators.py`: 속성 타입/검증 규칙에 따른 값 검증.
- `crud.py`: 속성 정의 저장소, 바인딩 저장소, 속성 값 저장소.
- `inheritance.py`: 상속 해석기(Resolver), 캐스케이드 엔진, 정합성 검증/재구축기.
- `services.py`: 바인딩/상속 연산을 묶은 서비스 파사드.
- `tasks.py`: 전체 재구축 및 정기 정합성 점검 ARQ 태스크.
- `routers.py`: 'attr' 도메인 API 엔드포인트 정의.
"""

__title__ = "PIM Attribute Domain"
__description__ = "Manages attributes, category bindings and attribute inheritance."
__version__ = "0.1.0"
__all__ = []
