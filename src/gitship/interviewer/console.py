from __future__ import annotations

import threading

import typer
from prompt_toolkit import prompt as pt_prompt
from prompt_toolkit.key_binding import KeyBindings

from gitship.interviewer.models import Answer, AnswerValue, Question, QuestionType


class ConsoleInterviewer:
    def __init__(self, *, multiline: bool = True) -> None:
        self._multiline = multiline

    def ask(self, question: Question) -> Answer:
        if question.type == QuestionType.FREEFORM:
            return self._ask_freeform(question)
        return self._ask_binary(question)

    def inform(self, message: str, stage: str = "") -> None:
        prefix = f"[{stage}] " if stage else ""
        typer.echo(f"[i] {prefix}{message}")

    def _ask_binary(self, question: Question) -> Answer:
        self._print_question(question)
        response = self._read_input("[y/N]: ", question.timeout_seconds)
        if response is None:
            return self._handle_timeout(question)

        response = response.strip().upper()
        if response in ("Y", "YES"):
            return Answer(value=AnswerValue.YES, text=response)
        return Answer(value=AnswerValue.NO, text=response)

    def _ask_freeform(self, question: Question) -> Answer:
        self._print_question(question)
        if self._multiline:
            typer.echo("(Alt+Enter to submit)")
        try:
            response = self._prompt_freeform()
        except (EOFError, KeyboardInterrupt):
            return self._handle_timeout(question)
        text = response.strip()
        return Answer(value=AnswerValue.YES if text else AnswerValue.SKIPPED, text=text)

    def _prompt_freeform(self) -> str:
        if self._multiline:
            bindings = KeyBindings()

            @bindings.add("enter")
            def _newline(event: object) -> None:
                event.current_buffer.insert_text("\n")  # type: ignore[union-attr]

            @bindings.add("escape", "enter")
            def _submit(event: object) -> None:
                event.current_buffer.validate_and_handle()  # type: ignore[union-attr]

            return pt_prompt("> ", multiline=True, key_bindings=bindings)
        return pt_prompt("> ")

    def _print_question(self, question: Question) -> None:
        prefix = f"[{question.stage}] " if question.stage else ""
        typer.echo(f"[?] {prefix}{question.text}")

    def _handle_timeout(self, question: Question) -> Answer:
        if question.default is not None:
            return question.default
        return Answer(value=AnswerValue.TIMEOUT)

    def _read_input(self, prompt: str, timeout: float | None) -> str | None:
        if timeout is None:
            try:
                return pt_prompt(prompt)
            except (EOFError, KeyboardInterrupt):
                return None

        result: list[str] = []
        event = threading.Event()

        def _reader() -> None:
            try:
                result.append(input(prompt))
            except (EOFError, KeyboardInterrupt):
                pass
            finally:
                event.set()

        thread = threading.Thread(target=_reader, daemon=True)
        thread.start()

        if event.wait(timeout=timeout):
            return result[0] if result else None
        return None
