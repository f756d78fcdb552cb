from __future__ import annotations

import logging
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import ResultStoreError
from app.models.models import Classroom

logger = logging.getLogger("classinsight.pipeline")


class WriteGuard(Protocol):
    def allows_write(self, class_id: str) -> bool: ...


def is_demo_class(classroom: Classroom) -> bool:
    """공개된 데모 학급은 누구나 볼 수 있지만 수정할 수 없습니다."""
    return bool(classroom.is_demo and classroom.is_public)


class DemoClassWriteGuard:
    """
    데모 학급에 대한 분석 결과 저장을 막는 쓰기 가드.
    allow_demo_writes 설정(관리자/개발 환경)이 켜져 있으면 모두 허용합니다.
    존재하지 않는 학급은 허용하고, 판단은 StageExecutor에 맡깁니다.
    """

    def __init__(self, db: Session, config: Optional[Settings] = None):
        self.db = db
        self.config = config or default_settings

    def allows_write(self, class_id: str) -> bool:
        if self.config.allow_demo_writes:
            return True
        try:
            classroom = self.db.get(Classroom, class_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Write guard lookup failed for class %s: %s", class_id, e)
            raise ResultStoreError(f"학급 정보 조회 중 오류가 발생했습니다: {e}") from e
        if classroom is None:
            return True
        return not is_demo_class(classroom)
