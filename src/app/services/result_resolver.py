from __future__ import annotations

import logging
from typing import Optional, Tuple, Union

from sqlalchemy.orm import Session

from app.crud.analysis_result import get_by_session_and_type, get_latest_by_type
from app.models.models import AnalysisResult
from app.models.stage import StageType

logger = logging.getLogger("classinsight.resolver")

SOURCE_SESSION = "session"
SOURCE_FALLBACK = "fallback"
SOURCE_LATEST = "latest"


class ResultResolver:
    """
    "세션 S의 단계 X 결과"를 찾고, 없으면 단계 X의 가장 최근 결과로 대체합니다.
    중단된 세션이나 세션 도입 이전 데이터도 화면에 결과가 보이도록 하기 위한 호환 경로입니다.
    """

    def __init__(self, db: Session):
        self.db = db

    def resolve(
        self,
        class_id: str,
        stage_type: Union[StageType, str],
        session_id: Optional[str] = None,
    ) -> Optional[AnalysisResult]:
        result, _ = self.resolve_with_source(class_id, stage_type, session_id)
        return result

    def resolve_with_source(
        self,
        class_id: str,
        stage_type: Union[StageType, str],
        session_id: Optional[str] = None,
    ) -> Tuple[Optional[AnalysisResult], Optional[str]]:
        stage = StageType(stage_type)

        if session_id:
            scoped = get_by_session_and_type(
                self.db, class_id=class_id, stage_type=stage, session_id=session_id
            )
            if scoped is not None:
                return scoped, SOURCE_SESSION

            latest = get_latest_by_type(self.db, class_id=class_id, stage_type=stage)
            if latest is not None:
                # 다른 세션(또는 세션 없는) 결과가 대신 반환됩니다.
                logger.info(
                    "No %s result in session %s for class %s; falling back to %s (session=%s)",
                    stage.value,
                    session_id,
                    class_id,
                    latest.id,
                    latest.session_id,
                )
                return latest, SOURCE_FALLBACK
            return None, None

        latest = get_latest_by_type(self.db, class_id=class_id, stage_type=stage)
        return latest, (SOURCE_LATEST if latest is not None else None)
