# tests/domains/__init__.py

"""
도메인별 테스트 모듈 패키지입니다.

- `test_cat_n.py`: 카테고리 트리 (생성, 조회, 이동, 삭제)
- `test_attr_n.py`: 속성 정의, 바인딩 API, 속성 값
- `test_inheritance_n.py`: 상속 해석, 캐스케이드, 정합성 검증/재구축
"""

__all__ = []
