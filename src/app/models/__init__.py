from .models import Classroom, Student, Relation, Survey, Question, Answer, AnalysisResult
from .stage import StageType, STAGE_SEQUENCE

__all__ = [
    "Classroom",
    "Student",
    "Relation",
    "Survey",
    "Question",
    "Answer",
    "AnalysisResult",
    "StageType",
    "STAGE_SEQUENCE",
]
