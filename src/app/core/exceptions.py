from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, logger, status

from .config import settings


class ClassInsightError(Exception):
    """분석 파이프라인 예외의 공통 부모"""


class ClassNotFoundError(ClassInsightError):
    def __init__(self, class_id: str):
        super().__init__(f"학급을 찾을 수 없습니다: {class_id}")
        self.class_id = class_id


class EmptyRosterError(ClassInsightError):
    def __init__(self, class_id: str):
        super().__init__(f"학생 정보를 찾을 수 없습니다: {class_id}")
        self.class_id = class_id


class WriteDeniedError(ClassInsightError):
    """쓰기 가드가 저장을 거부한 경우 (데모 학급 등)"""

    def __init__(self, class_id: str):
        super().__init__(f"이 학급에는 분석 결과를 저장할 수 없습니다: {class_id}")
        self.class_id = class_id


class AnalysisServiceError(ClassInsightError):
    """외부 분석 서비스 호출 실패 또는 사용할 수 없는 응답"""


class ResultStoreError(ClassInsightError):
    """분석 결과 저장 또는 분석 데이터 조회 실패"""


class StageExecutionError(ClassInsightError):
    """
    세션 실행 중 특정 단계가 실패했음을 나타냅니다.
    원인 예외는 __cause__로 연결됩니다.
    """

    def __init__(self, stage: str, session_id: Optional[str], cause: Exception):
        super().__init__(f"[{stage}] (session={session_id}) {cause}")
        self.stage = stage
        self.session_id = session_id
        self.cause = cause


class RunAlreadyInProgressError(ClassInsightError):
    def __init__(self, class_id: str, session_id: str):
        super().__init__(
            f"이미 분석이 진행 중인 학급입니다: {class_id} (session={session_id})"
        )
        self.class_id = class_id
        self.session_id = session_id


_STATUS_BY_ERROR = (
    (ClassNotFoundError, status.HTTP_404_NOT_FOUND),
    (EmptyRosterError, status.HTTP_404_NOT_FOUND),
    (WriteDeniedError, status.HTTP_403_FORBIDDEN),
    (RunAlreadyInProgressError, status.HTTP_409_CONFLICT),
    (AnalysisServiceError, status.HTTP_502_BAD_GATEWAY),
    (ResultStoreError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def to_http_exception(error: Exception) -> HTTPException:
    if isinstance(error, HTTPException):
        return error

    if isinstance(error, StageExecutionError):
        return to_http_exception(error.cause)

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            if status_code >= 500:
                logger.logger.error("Analysis failure: %s", error)
            return HTTPException(status_code=status_code, detail=str(error))

    logger.logger.error(f"Unhandled exception: {error}", exc_info=True)

    if settings.debug:
        detail_message = str(error)
    else:
        detail_message = "An unexpected server error occurred."

    return HTTPException(status_code=500, detail=detail_message)
