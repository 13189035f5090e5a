from gitship.interviewer.base import Interviewer, ask_text, ask_yes_no
from gitship.interviewer.console import ConsoleInterviewer
from gitship.interviewer.models import Answer, AnswerValue, Question, QuestionType
from gitship.interviewer.queue import QueueInterviewer

__all__ = [
    "Answer",
    "AnswerValue",
    "ConsoleInterviewer",
    "Interviewer",
    "Question",
    "QuestionType",
    "QueueInterviewer",
    "ask_text",
    "ask_yes_no",
]
