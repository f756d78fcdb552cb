# 학급 분석용 외부 생성형 텍스트 서비스 (Gemini)
# - 파이프라인은 이 모듈을 analyze(stage, payload) -> str 계약으로만 사용합니다.
# - 재시도/레이트 리밋 처리는 하지 않습니다. 실패는 모두 AnalysisServiceError로 올립니다.

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol

import google.generativeai as genai
from google.generativeai import types

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import AnalysisServiceError
from app.models.stage import StageType
from app.prompts.class_analysis import (
    EMPTY_GROUP_TEMPLATE,
    OVERVIEW_SYSTEM_PROMPT,
    OVERVIEW_USER_PROMPT_TEMPLATE,
    STUDENT_GROUP_SYSTEM_PROMPT,
    STUDENT_GROUP_USER_PROMPT_TEMPLATE,
)

logger = logging.getLogger("classinsight.gemini")


class AnalysisService(Protocol):
    def analyze(self, stage: StageType, payload: Dict[str, Any]) -> str: ...


def build_prompt(stage: StageType, payload: Dict[str, Any]) -> tuple[str, str]:
    """단계별 (system_instruction, user_prompt) 쌍을 만듭니다."""
    payload_json = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
    if stage is StageType.OVERVIEW:
        return OVERVIEW_SYSTEM_PROMPT, OVERVIEW_USER_PROMPT_TEMPLATE.format(
            payload_json=payload_json
        )
    return STUDENT_GROUP_SYSTEM_PROMPT, STUDENT_GROUP_USER_PROMPT_TEMPLATE.format(
        group_index=stage.group_index, payload_json=payload_json
    )


class GeminiAnalysisService:
    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    def analyze(self, stage: StageType, payload: Dict[str, Any]) -> str:
        # 학생이 없는 그룹은 모델을 호출하지 않고 안내 문구를 돌려줍니다.
        if stage is not StageType.OVERVIEW and not payload.get("students"):
            return EMPTY_GROUP_TEMPLATE.format(group_index=stage.group_index)

        if not self.config.google_api_key:
            raise AnalysisServiceError("Gemini API 키가 설정되지 않았습니다.")

        system_instruction, prompt = build_prompt(stage, payload)
        try:
            genai.configure(api_key=self.config.google_api_key)
            model = genai.GenerativeModel(
                model_name=self.config.gemini_model_analysis,
                system_instruction=system_instruction,
            )
            resp = model.generate_content(
                contents=[prompt],
                generation_config=types.GenerationConfig(
                    temperature=self.config.analysis_temperature,
                    max_output_tokens=self.config.analysis_max_output_tokens,
                ),
            )
            # 차단된 응답은 .text 접근 시 ValueError를 냅니다.
            text = resp.text
        except Exception as e:
            logger.error("Gemini 분석 호출 실패 (%s): %s", stage.value, e)
            raise AnalysisServiceError(f"Gemini 분석 중 오류가 발생했습니다: {e}") from e

        if not text or not text.strip():
            raise AnalysisServiceError(f"Gemini가 빈 응답을 반환했습니다 ({stage.value})")
        return text
