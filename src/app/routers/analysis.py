# file: app/routers/analysis.py
# 학급 분석 API
# - 단계별 분석 실행 (종합 / 학생 그룹 1~8), 전체 분석(세션) 백그라운드 실행과 진행 상황 조회
# - 분석 결과 목록(세션별 묶음), 세션 기준 결과 조회(최신 결과 대체 포함), 요약 수정, 삭제
import logging
from typing import List, Optional, Union

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, sessionmaker

from app.core.exceptions import ClassInsightError, WriteDeniedError, to_http_exception
from app.crud.analysis_result import (
    delete_all_for_class,
    delete_one,
    delete_session,
    get_analysis_result,
    list_by_class,
    update_summary,
)
from app.database import get_db, get_session_factory
from app.models.models import Classroom
from app.models.stage import STUDENT_GROUP_COUNT, StageType
from app.schemas.analysis import (
    AnalysisResultDetailOut,
    AnalysisResultOut,
    ResolvedResultOut,
    RunStartOut,
    RunStatusOut,
    SessionGroupOut,
    StageRunIn,
    SummaryUpdateIn,
    to_detail_out,
)
from app.services.gemini_analyzer import AnalysisService, GeminiAnalysisService
from app.services.progress import RunState
from app.services.result_resolver import ResultResolver
from app.services.session_coordinator import (
    RunHandle,
    RunRegistry,
    SessionCoordinator,
    default_registry,
)
from app.services.stage_executor import StageExecutor
from app.services.write_guard import DemoClassWriteGuard

# 자동 등록 시 모듈 경로(/analysis) 대신 사용할 prefix
ROUTER_PREFIX = "/class"

analysis = APIRouter(tags=["analysis"])
logger = logging.getLogger("classinsight.api")


def get_analysis_service() -> AnalysisService:
    return GeminiAnalysisService()


def get_run_registry() -> RunRegistry:
    return default_registry


def _require_class(db: Session, class_id: str) -> Classroom:
    classroom = db.get(Classroom, class_id)
    if classroom is None:
        raise HTTPException(status_code=404, detail="학급을 찾을 수 없습니다.")
    return classroom


def _execute_stage(
    db: Session,
    analyzer: AnalysisService,
    class_id: str,
    stage: StageType,
    session_id: Optional[str],
) -> AnalysisResultOut:
    try:
        if not DemoClassWriteGuard(db).allows_write(class_id):
            raise WriteDeniedError(class_id)
        saved = StageExecutor(db, analyzer).execute(class_id, stage, session_id)
    except ClassInsightError as e:
        raise to_http_exception(e)
    return AnalysisResultOut.model_validate(saved)


#####################################
# 단계별 분석 실행                   #
#####################################


@analysis.post("/{class_id}/analysis", response_model=AnalysisResultOut)
def run_single_analysis(
    class_id: str,
    stage: StageType = Query(StageType.OVERVIEW, description="실행할 분석 단계"),
    db: Session = Depends(get_db),
    analyzer: AnalysisService = Depends(get_analysis_service),
):
    """
    세션 없이 단계 하나를 실행합니다 (이전 방식의 단건 분석).
    session_id가 없는 결과는 덮어쓰지 않고 항상 새로 저장됩니다.
    """
    return _execute_stage(db, analyzer, class_id, stage, None)


@analysis.post("/{class_id}/analysis/overview", response_model=AnalysisResultOut)
def run_overview_analysis(
    class_id: str,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    body: Optional[StageRunIn] = None,
    db: Session = Depends(get_db),
    analyzer: AnalysisService = Depends(get_analysis_service),
):
    """학급 종합 분석 (전체 분석의 1단계)"""
    session_id = session_id or (body.session_id if body else None)
    return _execute_stage(db, analyzer, class_id, StageType.OVERVIEW, session_id)


@analysis.post("/{class_id}/analysis/students", response_model=AnalysisResultOut)
def run_student_group_analysis(
    class_id: str,
    group: int = Query(1, description="학생 그룹 번호 (1~8)"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    body: Optional[StageRunIn] = None,
    db: Session = Depends(get_db),
    analyzer: AnalysisService = Depends(get_analysis_service),
):
    """학생 그룹 분석 (전체 분석의 2~9단계)"""
    if not 1 <= group <= STUDENT_GROUP_COUNT:
        raise HTTPException(
            status_code=400,
            detail=f"유효하지 않은 그룹 번호입니다. 그룹 번호는 1~{STUDENT_GROUP_COUNT} 사이여야 합니다.",
        )
    session_id = session_id or (body.session_id if body else None)
    return _execute_stage(
        db, analyzer, class_id, StageType.students(group), session_id
    )


#####################################
# 전체 분석 (세션) 실행              #
#####################################


def _run_in_background(
    handle: RunHandle,
    session_factory: sessionmaker,
    analyzer: AnalysisService,
    registry: RunRegistry,
) -> None:
    db = None
    try:
        db = session_factory()
        coordinator = SessionCoordinator(
            StageExecutor(db, analyzer), DemoClassWriteGuard(db), registry
        )
    except Exception:
        # 실행 준비 단계 실패: 잠금을 풀고 실패 상태로 남김
        logger.exception("Run %s could not be started", handle.session_id)
        handle.reporter.finish(RunState.FAILED)
        registry.release(handle)
        if db is not None:
            db.close()
        raise

    try:
        result = coordinator.execute(handle)
        if not result.ok:
            logger.warning(
                "Run %s finished with failure at %s", handle.session_id, result.failed_stage
            )
    finally:
        db.close()


def _status_out(handle: RunHandle) -> RunStatusOut:
    return RunStatusOut(
        session_id=handle.session_id,
        class_id=handle.class_id,
        **handle.reporter.snapshot(),
    )


@analysis.post(
    "/{class_id}/analysis/runs",
    response_model=RunStartOut,
    status_code=status.HTTP_202_ACCEPTED,
)
def start_full_analysis(
    class_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    analyzer: AnalysisService = Depends(get_analysis_service),
    registry: RunRegistry = Depends(get_run_registry),
):
    """
    종합 분석 + 학생 그룹 1~8 분석을 하나의 세션으로 순서대로 실행합니다.
    같은 학급의 분석이 이미 진행 중이면 409를 반환합니다.
    """
    _require_class(db, class_id)
    try:
        handle = registry.begin(class_id)
    except ClassInsightError as e:
        raise to_http_exception(e)

    background_tasks.add_task(
        _run_in_background, handle, session_factory, analyzer, registry
    )
    logger.info("Queued analysis run %s for class %s", handle.session_id, class_id)
    return RunStartOut(
        session_id=handle.session_id, class_id=class_id, status="started"
    )


@analysis.get("/{class_id}/analysis/runs/{session_id}", response_model=RunStatusOut)
def get_run_status(
    class_id: str,
    session_id: str,
    registry: RunRegistry = Depends(get_run_registry),
):
    """진행 중인 단계, 경과 시간, 완료/실패 단계 조회"""
    handle = registry.get(session_id)
    if handle is None or handle.class_id != class_id:
        raise HTTPException(status_code=404, detail="작업을 찾을 수 없습니다.")
    return _status_out(handle)


@analysis.post(
    "/{class_id}/analysis/runs/{session_id}/cancel", response_model=RunStatusOut
)
def cancel_run(
    class_id: str,
    session_id: str,
    registry: RunRegistry = Depends(get_run_registry),
):
    """
    실행 중단 요청. 이미 시작된 단계는 끝까지 진행되어 저장되고,
    다음 단계부터 시작하지 않습니다.
    """
    handle = registry.get(session_id)
    if handle is None or handle.class_id != class_id:
        raise HTTPException(status_code=404, detail="작업을 찾을 수 없습니다.")
    handle.cancel()
    return _status_out(handle)


#####################################
# 분석 결과 조회 / 수정 / 삭제        #
#####################################


@analysis.get(
    "/{class_id}/analysis",
    response_model=Union[List[SessionGroupOut], List[AnalysisResultOut]],
)
def list_analysis_results(
    class_id: str,
    group_by_session: bool = Query(False),
    db: Session = Depends(get_db),
):
    """학급의 분석 결과 목록 (최신순, group_by_session=true이면 세션별 묶음)"""
    _require_class(db, class_id)
    if not group_by_session:
        return [
            AnalysisResultOut.model_validate(r)
            for r in list_by_class(db, class_id=class_id)
        ]

    return [
        SessionGroupOut(
            session_id=g.session_id,
            latest_created_at=g.latest_created_at,
            is_complete=g.is_complete,
            missing_stages=g.missing_stages if g.session_id else [],
            results=[AnalysisResultOut.model_validate(r) for r in g.results],
        )
        for g in list_by_class(db, class_id=class_id, group_by_session=True)
    ]


@analysis.get("/{class_id}/analysis/resolve", response_model=ResolvedResultOut)
def resolve_analysis_result(
    class_id: str,
    stage: StageType = Query(..., alias="type", description="분석 단계"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    db: Session = Depends(get_db),
):
    """
    세션의 단계 결과를 조회합니다. 해당 세션에 결과가 없으면
    같은 단계의 가장 최근 결과를 대신 반환합니다 (source=fallback).
    """
    result, source = ResultResolver(db).resolve_with_source(class_id, stage, session_id)
    if result is None:
        raise HTTPException(status_code=404, detail="분석 결과를 찾을 수 없습니다.")
    return ResolvedResultOut(source=source, result=to_detail_out(result))


@analysis.get(
    "/{class_id}/analysis/{result_id}", response_model=AnalysisResultDetailOut
)
def get_analysis_result_detail(
    class_id: str, result_id: str, db: Session = Depends(get_db)
):
    obj = get_analysis_result(db, class_id=class_id, result_id=result_id)
    if obj is None:
        raise HTTPException(status_code=404, detail="분석 결과를 찾을 수 없습니다.")
    return to_detail_out(obj)


@analysis.patch("/{class_id}/analysis/{result_id}", response_model=AnalysisResultOut)
def update_analysis_summary(
    class_id: str,
    result_id: str,
    payload: SummaryUpdateIn,
    db: Session = Depends(get_db),
):
    """요약(summary)만 수정합니다."""
    obj = update_summary(
        db, class_id=class_id, result_id=result_id, summary=payload.summary
    )
    if obj is None:
        raise HTTPException(status_code=404, detail="분석 결과를 찾을 수 없습니다.")
    return AnalysisResultOut.model_validate(obj)


@analysis.delete("/{class_id}/analysis/{result_id}")
def delete_analysis_result(
    class_id: str, result_id: str, db: Session = Depends(get_db)
):
    if not delete_one(db, class_id=class_id, result_id=result_id):
        raise HTTPException(status_code=404, detail="분석 결과를 찾을 수 없습니다.")
    return {"status": "success", "deleted": 1}


@analysis.delete("/{class_id}/analysis")
def delete_analysis_results(
    class_id: str,
    delete_all: bool = Query(False, alias="deleteAll"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    db: Session = Depends(get_db),
):
    """
    deleteAll=true: 학급의 모든 분석 결과 삭제
    sessionId=S: 해당 세션의 결과만 삭제
    """
    _require_class(db, class_id)
    if delete_all:
        deleted = delete_all_for_class(db, class_id=class_id)
    elif session_id:
        deleted = delete_session(db, class_id=class_id, session_id=session_id)
    else:
        raise HTTPException(
            status_code=400, detail="deleteAll 또는 sessionId 중 하나가 필요합니다."
        )
    return {"status": "success", "deleted": deleted}
