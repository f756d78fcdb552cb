# Gemini SDK는 모킹하고 GeminiAnalysisService의 호출 방식과 오류 변환만 확인합니다.

import json
from unittest.mock import MagicMock, patch

import pytest

from app.core.config import Settings
from app.core.exceptions import AnalysisServiceError
from app.models.stage import StageType
from app.services.gemini_analyzer import GeminiAnalysisService, build_prompt

PAYLOAD = {
    "class": {"id": "c-1", "name": "3학년 2반", "school_name": "한빛초등학교", "grade": "3학년"},
    "students": [{"id": "s-1", "name": "김하늘", "gender": "F"}],
    "relationships": [],
}


@pytest.fixture
def config():
    return Settings(
        _env_file=None,
        google_api_key="test-key",
        gemini_model_analysis="test-model",
        analysis_temperature=0.7,
        analysis_max_output_tokens=10000,
    )


def _mock_model(mock_genai, text="# 분석 보고서"):
    model = MagicMock()
    model.generate_content.return_value = MagicMock(text=text)
    mock_genai.GenerativeModel.return_value = model
    return model


@patch("app.services.gemini_analyzer.genai")
def test_analyze_calls_gemini_once(mock_genai, config):
    model = _mock_model(mock_genai)

    text = GeminiAnalysisService(config).analyze(StageType.OVERVIEW, PAYLOAD)

    assert text == "# 분석 보고서"
    mock_genai.configure.assert_called_once_with(api_key="test-key")
    _, kwargs = mock_genai.GenerativeModel.call_args
    assert kwargs["model_name"] == "test-model"
    assert "학급 관계 분석 전문가" in kwargs["system_instruction"]

    model.generate_content.assert_called_once()
    _, call_kwargs = model.generate_content.call_args
    generation_config = call_kwargs["generation_config"]
    assert generation_config.temperature == 0.7
    assert generation_config.max_output_tokens == 10000
    assert "김하늘" in call_kwargs["contents"][0]


@patch("app.services.gemini_analyzer.genai")
def test_empty_student_group_skips_model(mock_genai, config):
    text = GeminiAnalysisService(config).analyze(
        StageType.STUDENTS_6, {**PAYLOAD, "students": []}
    )

    assert "학생 그룹 6" in text
    mock_genai.GenerativeModel.assert_not_called()


@patch("app.services.gemini_analyzer.genai")
def test_missing_api_key(mock_genai):
    config = Settings(_env_file=None, google_api_key=None)

    with pytest.raises(AnalysisServiceError):
        GeminiAnalysisService(config).analyze(StageType.OVERVIEW, PAYLOAD)
    mock_genai.configure.assert_not_called()


@patch("app.services.gemini_analyzer.genai")
def test_sdk_error_becomes_service_error(mock_genai, config):
    model = _mock_model(mock_genai)
    model.generate_content.side_effect = RuntimeError("429 quota exceeded")

    with pytest.raises(AnalysisServiceError) as exc_info:
        GeminiAnalysisService(config).analyze(StageType.STUDENTS_1, PAYLOAD)
    assert "429" in str(exc_info.value)


@patch("app.services.gemini_analyzer.genai")
def test_blank_response_becomes_service_error(mock_genai, config):
    _mock_model(mock_genai, text="  ")

    with pytest.raises(AnalysisServiceError):
        GeminiAnalysisService(config).analyze(StageType.OVERVIEW, PAYLOAD)


def test_build_prompt_for_student_group():
    system_instruction, prompt = build_prompt(StageType.STUDENTS_2, PAYLOAD)

    assert "학생 그룹 2" in prompt
    # 한글은 이스케이프하지 않음
    assert json.dumps(PAYLOAD, ensure_ascii=False, indent=2) in prompt
    assert "# [학생 이름]" in system_instruction
