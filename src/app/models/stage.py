"""
분석 단계(stage) 정의

전체 분석은 학급 종합 분석 1개 + 학생 그룹 분석 8개, 총 9단계로 고정되어 있으며
항상 아래 STAGE_SEQUENCE 순서대로 실행됩니다.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

STUDENT_GROUP_COUNT = 8


class StageType(str, Enum):
    OVERVIEW = "overview"
    STUDENTS_1 = "students-1"
    STUDENTS_2 = "students-2"
    STUDENTS_3 = "students-3"
    STUDENTS_4 = "students-4"
    STUDENTS_5 = "students-5"
    STUDENTS_6 = "students-6"
    STUDENTS_7 = "students-7"
    STUDENTS_8 = "students-8"

    @classmethod
    def students(cls, group_index: int) -> "StageType":
        """학생 그룹 번호(1~8)에 해당하는 단계를 반환합니다."""
        if not 1 <= group_index <= STUDENT_GROUP_COUNT:
            raise ValueError(
                f"group_index must be between 1 and {STUDENT_GROUP_COUNT}: {group_index}"
            )
        return cls(f"students-{group_index}")

    @property
    def group_index(self) -> Optional[int]:
        if self is StageType.OVERVIEW:
            return None
        return int(self.value.split("-", 1)[1])

    @property
    def label(self) -> str:
        """진행 상황 표시용 라벨"""
        if self is StageType.OVERVIEW:
            return "학급 종합 분석"
        return f"학생 그룹 {self.group_index} 분석"

    def __str__(self) -> str:
        return self.value


STAGE_SEQUENCE: Tuple[StageType, ...] = (StageType.OVERVIEW,) + tuple(
    StageType.students(i) for i in range(1, STUDENT_GROUP_COUNT + 1)
)

STAGE_ORDER = {stage.value: position for position, stage in enumerate(STAGE_SEQUENCE)}
