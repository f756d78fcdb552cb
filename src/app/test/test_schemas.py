import json

import pytest

from app.models.stage import STAGE_SEQUENCE, StageType
from app.schemas.analysis import CombinedResultData, PlainResultData, parse_result_data


def test_markdown_is_plain():
    parsed = parse_result_data("# 학급 분석\n\n- 항목")
    assert parsed == PlainResultData(text="# 학급 분석\n\n- 항목")


def test_json_object_of_strings_is_combined():
    raw = json.dumps({"overview": "# 종합", "students-1": "# 그룹1", "count": 3})
    parsed = parse_result_data(raw)
    assert isinstance(parsed, CombinedResultData)
    assert parsed.sections == {"overview": "# 종합", "students-1": "# 그룹1"}


@pytest.mark.parametrize("raw", ['"따옴표 문자열"', "[1, 2]", '{"n": 1}', "42"])
def test_other_json_is_plain(raw):
    parsed = parse_result_data(raw)
    assert parsed.kind == "plain"
    if raw.startswith('"'):
        assert parsed.text == "따옴표 문자열"
    else:
        assert parsed.text == raw


def test_stage_sequence():
    assert [s.value for s in STAGE_SEQUENCE] == ["overview"] + [
        f"students-{i}" for i in range(1, 9)
    ]
    assert StageType.students(8) is StageType.STUDENTS_8
    assert StageType.OVERVIEW.group_index is None
    with pytest.raises(ValueError):
        StageType.students(9)
