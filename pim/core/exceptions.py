# pim/core/exceptions.py

"""
도메인 예외 정의 모듈입니다.

CRUD/서비스 계층은 HTTPException 대신 아래 예외를 발생시키고,
main.py의 exception_handler가 이를 HTTP 응답(404/409/422)으로 변환합니다.
덕분에 서비스 계층은 ARQ 태스크나 CLI 스크립트에서도 그대로 재사용됩니다.
"""

from typing import Any, Optional


class PIMError(Exception):
    """모든 도메인 예외의 기본 클래스"""
    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class NotFoundError(PIMError):
    """카테고리, 속성 또는 바인딩이 존재하지 않음 (404)"""
    status_code = 404


class DuplicateBindingError(PIMError):
    """이미 바인딩된 (카테고리, 속성) 쌍을 다시 바인딩하려는 경우 (409)"""
    status_code = 409


class DuplicateAttributeError(PIMError):
    """동일한 이름의 활성 속성이 이미 존재하는 경우 (409)"""
    status_code = 409


class ValidationError(PIMError):
    """
    잘못된 요청 (422).
    빈 배치 목록, 배치 안의 잘못된 속성 참조, 순환 참조 이동, 속성 값 검증 실패 등.
    """
    status_code = 422


class CascadeWarning(UserWarning):
    """
    캐스케이드 단계 하나가 실패했음을 나타내는 비치명적 경고입니다.
    호출자에게 raise되지 않으며, 로그와 CascadeResult.failures 로만 보고됩니다.
    """

    def __init__(self, operation: str, category_id: int, attribute_id: int, reason: Optional[str] = None):
        self.operation = operation
        self.category_id = category_id
        self.attribute_id = attribute_id
        self.reason = reason or ""
        super().__init__(
            f"cascade {operation} failed at category {category_id} for attribute {attribute_id}: {self.reason}"
        )
