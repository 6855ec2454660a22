# tests/__init__.py

"""
PIM API 테스트 스위트 패키지입니다.

- `conftest.py`: 테스트 DB 엔진/세션, AsyncClient, 카테고리/속성 팩토리 픽스처
- `test_main.py`: 루트, 헬스 체크, 예외 변환, ARQ 워커 설정
- `domains/`: 도메인별 통합 테스트 (cat, attr, 상속 엔진)
"""

__title__ = "PIM API Tests"
__all__ = []
