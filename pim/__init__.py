# pim/__init__.py

"""
PIM(Product Information Management) FastAPI 애플리케이션의 메인 패키지입니다.

이 패키지는 상품 카테고리 트리와, 카테고리에 바인딩되는 속성(attribute)의
상속 엔진을 제공합니다. FastAPI 애플리케이션의 진입점 (main.py)과
공통 설정, 데이터베이스 연결, 예외 정의를 담는 core 서브패키지,
그리고 각 비즈니스 도메인(cat, attr)을 대표하는 domains 서브패키지로 구성됩니다.
"""

APP_NAME = "PIM FastAPI API"
APP_VERSION = "0.1.0"
API_PREFIX = "/api/v1"  # API 라우트의 공통 접두사 (main.py에서 적용)

__version__ = APP_VERSION
__title__ = APP_NAME
__description__ = "Product Information Management (PIM) API backend with category-scoped attribute inheritance."
__all__ = []
