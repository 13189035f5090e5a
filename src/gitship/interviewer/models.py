from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class QuestionType(str, Enum):
    YES_NO = "YES_NO"
    CONFIRMATION = "CONFIRMATION"
    FREEFORM = "FREEFORM"


class AnswerValue(str, Enum):
    YES = "YES"
    NO = "NO"
    SKIPPED = "SKIPPED"
    TIMEOUT = "TIMEOUT"


class Answer(BaseModel):
    value: AnswerValue = AnswerValue.NO
    text: str = ""


class Question(BaseModel):
    text: str
    type: QuestionType = QuestionType.CONFIRMATION
    stage: str = ""
    timeout_seconds: float | None = None
    default: Answer | None = None
