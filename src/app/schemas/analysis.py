# file: app/schemas/analysis.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class AnalysisResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)  # ORM 객체 → Pydantic 변환 허용

    id: str
    class_id: str
    session_id: Optional[str] = None
    type: str = Field(..., description="분석 단계 (overview, students-1 ~ students-8)")
    result_data: str = Field(..., description="분석 서비스 원본 응답")
    summary: str = ""
    created_at: datetime


# ---------------------------------------------------------------------------
# result_data 해석 (화면 응답용). 파이프라인은 result_data를 해석하지 않습니다.
# ---------------------------------------------------------------------------
class PlainResultData(BaseModel):
    kind: Literal["plain"] = "plain"
    text: str


class CombinedResultData(BaseModel):
    kind: Literal["combined"] = "combined"
    sections: Dict[str, str]


ResultDataVariant = Annotated[
    Union[PlainResultData, CombinedResultData], Field(discriminator="kind")
]


def parse_result_data(raw: str) -> Union[PlainResultData, CombinedResultData]:
    """
    저장된 result_data를 화면용 형태로 해석합니다.
    - 문자열 값을 가진 JSON 객체(이전 버전 형식): 섹션별 텍스트 묶음
    - 그 외: 일반 텍스트 (마크다운)
    """
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return PlainResultData(text=raw)

    if isinstance(decoded, str):
        return PlainResultData(text=decoded)
    if isinstance(decoded, dict):
        sections = {k: v for k, v in decoded.items() if isinstance(v, str)}
        if sections:
            return CombinedResultData(sections=sections)
    return PlainResultData(text=raw)


class AnalysisResultDetailOut(AnalysisResultOut):
    parsed: ResultDataVariant


def to_detail_out(obj) -> AnalysisResultDetailOut:
    base = AnalysisResultOut.model_validate(obj)
    return AnalysisResultDetailOut(
        **base.model_dump(), parsed=parse_result_data(base.result_data)
    )


class ResolvedResultOut(BaseModel):
    source: Literal["session", "fallback", "latest"] = Field(
        ..., description="session: 요청한 세션의 결과, fallback/latest: 가장 최근 결과로 대체"
    )
    result: AnalysisResultDetailOut


class SessionGroupOut(BaseModel):
    session_id: Optional[str] = None
    latest_created_at: Optional[datetime] = None
    is_complete: bool = False
    missing_stages: List[str] = Field(default_factory=list)
    results: List[AnalysisResultOut]


class StageRunIn(BaseModel):
    """이전 클라이언트는 session_id를 쿼리와 본문 양쪽으로 보냅니다."""

    session_id: Optional[str] = None


class SummaryUpdateIn(BaseModel):
    summary: str = Field(..., description="사용자 편집 요약 (빈 문자열 허용)")


class RunStartOut(BaseModel):
    session_id: str
    class_id: str
    status: str
    message: str = "분석 작업이 시작되었습니다."


class RunStatusOut(BaseModel):
    session_id: str
    class_id: str
    status: str
    current_stage_label: str
    elapsed_seconds: int
    is_running: bool
    completed_stages: List[str] = Field(default_factory=list)
    skipped_stages: List[str] = Field(default_factory=list)
    failed_stage: Optional[str] = None
    error: Optional[str] = None
