from __future__ import annotations

from typing import Protocol, runtime_checkable

from gitship.interviewer.models import Answer, AnswerValue, Question, QuestionType


@runtime_checkable
class Interviewer(Protocol):
    def ask(self, question: Question) -> Answer: ...

    def inform(self, message: str, stage: str = "") -> None: ...


def ask_yes_no(interviewer: Interviewer, message: str, *, stage: str = "") -> bool:
    answer = interviewer.ask(Question(text=message, type=QuestionType.YES_NO, stage=stage))
    return answer.value == AnswerValue.YES


def ask_text(interviewer: Interviewer, message: str, *, stage: str = "") -> str:
    """Free-text answer, stripped. Empty when the question was skipped or timed out."""
    answer = interviewer.ask(Question(text=message, type=QuestionType.FREEFORM, stage=stage))
    return answer.text.strip()
