from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.models import AnalysisResult
from app.models.stage import STAGE_ORDER, STAGE_SEQUENCE, StageType


def _utcnow() -> datetime:
    """UTC 현재 시간 반환"""
    return datetime.now(timezone.utc)


def _stage_value(stage_type: Union[StageType, str]) -> str:
    return StageType(stage_type).value


@dataclass
class SessionGroup:
    """
    같은 session_id를 공유하는 분석 결과 묶음.
    session_id가 없는 결과는 각각 단독 그룹이 됩니다.
    """

    session_id: Optional[str]
    results: List[AnalysisResult] = field(default_factory=list)

    @property
    def latest_created_at(self) -> Optional[datetime]:
        return max((r.created_at for r in self.results), default=None)

    @property
    def missing_stages(self) -> List[str]:
        present = {r.type for r in self.results}
        return [s.value for s in STAGE_SEQUENCE if s.value not in present]

    @property
    def is_complete(self) -> bool:
        return self.session_id is not None and not self.missing_stages


def upsert_analysis_result(
    db: Session,
    *,
    class_id: str,
    stage_type: Union[StageType, str],
    session_id: Optional[str],
    result_data: str,
    summary: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> AnalysisResult:
    """
    (class_id, type, session_id) 키로 분석 결과를 저장합니다.
    - session_id가 있으면 같은 키의 기존 행을 덮어씁니다 (created_at 갱신).
    - session_id가 없으면 항상 새 행을 추가합니다 (단건 분석 방식).
    """
    stage = _stage_value(stage_type)
    now = created_at or _utcnow()

    if session_id is not None:
        existing = get_by_session_and_type(
            db, class_id=class_id, stage_type=stage, session_id=session_id
        )
        if existing is not None:
            return _overwrite(db, existing, result_data, summary, now)

    obj = AnalysisResult(
        class_id=class_id,
        session_id=session_id,
        type=stage,
        result_data=result_data,
        summary=summary or "",
        created_at=now,
    )
    db.add(obj)
    try:
        db.commit()
    except IntegrityError:
        # 같은 세션/단계가 동시에 저장된 경우: 한 번만 덮어쓰기로 재시도
        db.rollback()
        if session_id is None:
            raise
        existing = get_by_session_and_type(
            db, class_id=class_id, stage_type=stage, session_id=session_id
        )
        if existing is None:
            raise
        return _overwrite(db, existing, result_data, summary, now)
    db.refresh(obj)
    return obj


def _overwrite(
    db: Session,
    existing: AnalysisResult,
    result_data: str,
    summary: Optional[str],
    now: datetime,
) -> AnalysisResult:
    existing.result_data = result_data
    existing.summary = summary or ""
    existing.created_at = now
    db.commit()
    db.refresh(existing)
    return existing


def get_analysis_result(
    db: Session, *, class_id: str, result_id: str
) -> Optional[AnalysisResult]:
    """
    학급 안에서 ID로 단일 분석 결과를 조회합니다.
    """
    return db.execute(
        select(AnalysisResult).where(
            AnalysisResult.id == result_id, AnalysisResult.class_id == class_id
        )
    ).scalar_one_or_none()


def get_by_session_and_type(
    db: Session,
    *,
    class_id: str,
    stage_type: Union[StageType, str],
    session_id: str,
) -> Optional[AnalysisResult]:
    return db.execute(
        select(AnalysisResult).where(
            AnalysisResult.class_id == class_id,
            AnalysisResult.type == _stage_value(stage_type),
            AnalysisResult.session_id == session_id,
        )
    ).scalar_one_or_none()


def get_latest_by_type(
    db: Session, *, class_id: str, stage_type: Union[StageType, str]
) -> Optional[AnalysisResult]:
    """
    세션과 무관하게 해당 학급/단계의 가장 최근 결과를 반환합니다.
    created_at이 같으면 id로 순서를 정합니다.
    """
    return (
        db.execute(
            select(AnalysisResult)
            .where(
                AnalysisResult.class_id == class_id,
                AnalysisResult.type == _stage_value(stage_type),
            )
            .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def list_by_class(
    db: Session, *, class_id: str, group_by_session: bool = False
) -> Union[List[AnalysisResult], List[SessionGroup]]:
    """
    학급의 분석 결과 목록 (최신순).
    group_by_session=True이면 세션 단위로 묶고, 그룹 안의 가장 최근 결과 기준으로
    그룹을 최신순 정렬합니다. 그룹 내부는 단계 순서대로 정렬합니다.
    """
    rows = list(
        db.execute(
            select(AnalysisResult)
            .where(AnalysisResult.class_id == class_id)
            .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())
        ).scalars()
    )
    if not group_by_session:
        return rows

    groups: List[SessionGroup] = []
    by_session: Dict[str, SessionGroup] = {}
    for row in rows:
        if row.session_id is None:
            groups.append(SessionGroup(session_id=None, results=[row]))
            continue
        group = by_session.get(row.session_id)
        if group is None:
            group = SessionGroup(session_id=row.session_id)
            by_session[row.session_id] = group
            groups.append(group)
        group.results.append(row)

    for group in groups:
        group.results.sort(key=lambda r: STAGE_ORDER.get(r.type, len(STAGE_ORDER)))
    # rows가 최신순이므로 groups도 이미 최신순이지만, 명시적으로 다시 정렬합니다.
    groups.sort(key=lambda g: g.latest_created_at, reverse=True)
    return groups


def update_summary(
    db: Session, *, class_id: str, result_id: str, summary: str
) -> Optional[AnalysisResult]:
    obj = get_analysis_result(db, class_id=class_id, result_id=result_id)
    if obj is None:
        return None
    obj.summary = summary
    db.commit()
    db.refresh(obj)
    return obj


def delete_one(db: Session, *, class_id: str, result_id: str) -> bool:
    obj = get_analysis_result(db, class_id=class_id, result_id=result_id)
    if obj is None:
        return False
    db.delete(obj)
    db.commit()
    return True


def delete_session(db: Session, *, class_id: str, session_id: str) -> int:
    """해당 학급에서 session_id를 공유하는 결과를 모두 삭제하고 삭제 건수를 반환합니다."""
    result = db.execute(
        delete(AnalysisResult).where(
            AnalysisResult.class_id == class_id,
            AnalysisResult.session_id == session_id,
        )
    )
    db.commit()
    return result.rowcount


def delete_all_for_class(db: Session, *, class_id: str) -> int:
    result = db.execute(
        delete(AnalysisResult).where(AnalysisResult.class_id == class_id)
    )
    db.commit()
    return result.rowcount
