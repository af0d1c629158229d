"""Message texts for tests, questions and results (HTML parse mode)."""
import html
from datetime import datetime
from typing import List, Optional

from attempt.session import AttemptSession, SessionState
from portal_api.models import CompletedTest, FinalResult, OpenTest, QuestionType

_KIND_HINTS = {
    QuestionType.SINGLE: "Choose one option.",
    QuestionType.MULTIPLE: "Choose all options that apply.",
    QuestionType.TEXT: "✏️ Type your answer as a message.",
}


def format_time(seconds: int) -> str:
    """'MM:SS'; minutes are not wrapped into hours."""
    seconds = max(0, seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def _format_date(timestamp: Optional[int]) -> str:
    if not timestamp:
        return "—"
    return datetime.fromtimestamp(timestamp).strftime("%d.%m.%Y %H:%M")


def format_question(session: AttemptSession) -> str:
    """Header with progress and timer, the question and the current answer."""
    question = session.current_question
    answer = session.current_answer

    lines = [
        f"<b>{html.escape(session.context.test_name or 'Test')}</b>",
        f"Attempted: {session.answers.attempted()}/{session.total}"
        f" | ⏱ {format_time(session.remaining_seconds)}",
        "",
        f"<b>{session.current_index + 1}. {html.escape(question.text)}</b>",
    ]

    if question.image:
        lines.append(f'<a href="{html.escape(question.image, quote=True)}">🖼 Image</a>')

    marks = f"Marks: {question.total_marks:g}"
    if question.negative_marks:
        marks += f" (−{question.negative_marks:g} for a wrong answer)"
    lines.append(f"<i>{marks}</i>")
    lines.append("")
    lines.append(_KIND_HINTS[question.kind])

    if question.kind is QuestionType.TEXT:
        text = (answer.text or "").strip()
        lines.append("")
        lines.append(f"Your answer: {html.escape(text)}" if text else "Your answer: —")

    if session.state is SessionState.CONFIRMING:
        lines.append("")
        lines.append(
            f"❓ Submit the test? Attempted {session.answers.attempted()}, "
            f"unattempted {session.answers.unattempted()}."
        )

    return "\n".join(lines)


def format_result(result: FinalResult, test_name: str = "") -> str:
    """Final result card."""
    title = f"📊 Result: {html.escape(test_name)}" if test_name else "📊 Test result"
    score = f"{result.final_score}%" if result.final_score is not None else "—"

    return "\n".join([
        f"<b>{title}</b>",
        "",
        f"Total questions: {result.total_questions}",
        f"Attempted: {result.attempted}",
        f"Unattempted: {result.unattempted}",
        f"Correct answers: {result.correct}",
        f"Wrong answers: {result.wrong}",
        f"Final score: {score}",
        f"Result: {html.escape(result.final_result or '—')}",
        "",
        f"Marks awarded: {result.marks_awarded:g}",
        f"Marks deducted: {result.marks_deducted:g}",
        f"Total marks: {result.total_marks_awarded:g}",
    ])


def format_open_tests(tests: List[OpenTest]) -> str:
    if not tests:
        return "📭 There are no tests available for you right now."

    lines = ["<b>📝 Open tests</b>", ""]
    for test in tests:
        line = f"• <b>{html.escape(test.name)}</b> — {test.duration} min"
        if test.course_name:
            line += f" ({html.escape(test.course_name)})"
        lines.append(line)
        lines.append(f"   until {_format_date(test.end_date)}")
    lines.append("")
    lines.append("Press a test to start it. The timer starts immediately.")
    return "\n".join(lines)


def format_completed_tests(tests: List[CompletedTest]) -> str:
    if not tests:
        return "📭 You have not completed any tests yet."

    lines = ["<b>✅ Completed tests</b>", ""]
    for test in tests:
        score = f"{test.final_score}%" if test.final_score is not None else "—"
        line = f"• <b>{html.escape(test.name)}</b>: {score}"
        if test.final_result:
            line += f" — {html.escape(test.final_result)}"
        lines.append(line)
    return "\n".join(lines)
