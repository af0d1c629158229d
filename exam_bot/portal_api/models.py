"""Data models for exam portal API responses."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import InvalidResponseError


class QuestionType(str, Enum):
    """Question kinds, valued by their wire names."""

    SINGLE = "radio"
    MULTIPLE = "multiple_choice"
    TEXT = "text"


ANSWERED = "answered"


@dataclass
class Option:
    """One selectable option of a question. Correctness is never exposed here."""
    option_id: int
    text: str
    image: Optional[str] = None


@dataclass
class Question:
    """Single test question."""
    question_id: int
    text: str
    kind: QuestionType
    options: List[Option] = field(default_factory=list)
    total_marks: float = 0
    negative_marks: float = 0
    image: Optional[str] = None

    def has_option(self, option_id: int) -> bool:
        return any(option.option_id == option_id for option in self.options)


@dataclass
class QuestionRef:
    """Entry of the attempt's question list."""
    question_id: int
    status: Optional[str] = None


@dataclass
class RestoredAnswer:
    """Answer the server recorded for a question in an earlier sitting."""
    question_id: int
    status: str
    option_ids: List[int] = field(default_factory=list)
    text: Optional[str] = None

    @property
    def answered(self) -> bool:
        return self.status == ANSWERED


@dataclass
class FinalResult:
    """Server-computed score of an attempt."""
    total_questions: int = 0
    attempted: int = 0
    unattempted: int = 0
    correct: int = 0
    wrong: int = 0
    final_score: Optional[str] = None       # percentage, as sent by the portal
    final_result: Optional[str] = None      # pass/fail label
    marks_awarded: float = 0
    marks_deducted: float = 0
    total_marks_awarded: float = 0


@dataclass
class OpenTest:
    """Test the student can start right now."""
    test_id: int
    name: str
    duration: int                           # minutes
    start_date: Optional[int] = None        # epoch seconds
    end_date: Optional[int] = None
    course_name: Optional[str] = None


@dataclass
class CompletedTest:
    """Finished test with its score summary."""
    test_id: int
    name: str
    course_name: Optional[str] = None
    total_questions: Optional[int] = None
    attempted: Optional[int] = None
    correct: Optional[int] = None
    wrong: Optional[int] = None
    final_score: Optional[str] = None
    final_result: Optional[str] = None


@dataclass
class Dashboard:
    """Student profile with open and completed tests."""
    student_id: int
    first_name: str
    last_name: str
    college_name: Optional[str] = None
    open_tests: List[OpenTest] = field(default_factory=list)
    completed_tests: List[CompletedTest] = field(default_factory=list)


# ============================================================================
# CONVERTERS: portal JSON -> our dataclasses
# ============================================================================

def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def question_from_payload(payload: Dict[str, Any]) -> Question:
    """Converts the `question` object of the question endpoint."""
    try:
        kind = QuestionType(payload.get("type"))
    except ValueError:
        raise InvalidResponseError(f"Unknown question type: {payload.get('type')!r}")

    try:
        options = [
            Option(
                option_id=int(raw["id"]),
                text=raw.get("option_text") or "",
                image=raw.get("option_image"),
            )
            for raw in payload.get("options") or []
        ]
        return Question(
            question_id=int(payload["id"]),
            text=payload.get("name") or "",
            kind=kind,
            options=options,
            total_marks=_to_float(payload.get("total_marks")),
            negative_marks=_to_float(payload.get("negative_marks")),
            image=payload.get("image"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidResponseError(f"Malformed question payload: {e}")


def question_ref_from_payload(payload: Dict[str, Any]) -> QuestionRef:
    """Converts one entry of `submissions`."""
    question_id = _to_int(payload.get("question_id"))
    if question_id is None:
        raise InvalidResponseError("Submission entry without question_id")
    return QuestionRef(question_id=question_id, status=payload.get("status"))


def restored_answer_from_payload(payload: Dict[str, Any]) -> RestoredAnswer:
    """Converts one entry of the restoration endpoint's `questions`."""
    question_id = _to_int(payload.get("question_id"))
    if question_id is None:
        raise InvalidResponseError("Restoration entry without question_id")

    option_ids = []
    for raw in payload.get("submitted_options") or []:
        option_id = _to_int(raw)
        if option_id is not None:
            option_ids.append(option_id)

    return RestoredAnswer(
        question_id=question_id,
        status=payload.get("status") or "",
        option_ids=option_ids,
        text=payload.get("submitted_text") or None,
    )


def final_result_from_payload(payload: Dict[str, Any]) -> FinalResult:
    """Converts the `result` object of the final scoring endpoint."""
    final_score = payload.get("final_score")
    return FinalResult(
        total_questions=_to_int(payload.get("total_questions")) or 0,
        attempted=_to_int(payload.get("attempted")) or 0,
        unattempted=_to_int(payload.get("unattempted")) or 0,
        correct=_to_int(payload.get("correct")) or 0,
        wrong=_to_int(payload.get("wrong")) or 0,
        final_score=str(final_score) if final_score is not None else None,
        final_result=payload.get("final_result"),
        marks_awarded=_to_float(payload.get("marks_awarded")),
        marks_deducted=_to_float(payload.get("marks_deducted")),
        total_marks_awarded=_to_float(payload.get("total_marks_awarded")),
    )


def open_test_from_payload(payload: Dict[str, Any]) -> Optional[OpenTest]:
    """Converts an entry of `openTests`. Entries without an id are skipped."""
    test_id = _to_int(payload.get("test_id"))
    if test_id is None:
        return None
    return OpenTest(
        test_id=test_id,
        name=payload.get("test_name") or "—",
        duration=_to_int(payload.get("duration")) or 0,
        start_date=_to_int(payload.get("start_date")),
        end_date=_to_int(payload.get("end_date")),
        course_name=payload.get("course_name"),
    )


def completed_test_from_payload(payload: Dict[str, Any]) -> Optional[CompletedTest]:
    """Converts an entry of `completdTests`."""
    test_id = _to_int(payload.get("test_id"))
    if test_id is None:
        return None
    final_score = payload.get("final_score")
    return CompletedTest(
        test_id=test_id,
        name=payload.get("test_name") or "—",
        course_name=payload.get("course_name"),
        total_questions=_to_int(payload.get("total_questions")),
        attempted=_to_int(payload.get("attempted")),
        correct=_to_int(payload.get("correct")),
        wrong=_to_int(payload.get("wrong")),
        final_score=str(final_score) if final_score is not None else None,
        final_result=payload.get("final_result"),
    )


def dashboard_from_payload(payload: Dict[str, Any]) -> Dashboard:
    """Converts the `data` object of the dashboard endpoint."""
    student_id = _to_int(payload.get("student_id"))
    if student_id is None:
        raise InvalidResponseError("Dashboard without student_id")

    tests = payload.get("tests") or {}
    open_tests = [t for t in map(open_test_from_payload, tests.get("openTests") or []) if t]
    completed = [t for t in map(completed_test_from_payload, tests.get("completdTests") or []) if t]

    return Dashboard(
        student_id=student_id,
        first_name=payload.get("firstname") or "",
        last_name=payload.get("lastname") or "",
        college_name=payload.get("college_name"),
        open_tests=open_tests,
        completed_tests=completed,
    )
