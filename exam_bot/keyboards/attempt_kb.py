"""Inline keyboards of the test-taking screen."""
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from attempt.session import AttemptSession, SessionState
from portal_api.models import QuestionType

_MAX_OPTION_LABEL = 48
_GRID_WIDTH = 5

_STATUS_MARKS = {
    "answered": "✅",
    "seen": "👁",
    "new": "▫️",
}


def _label(index: int, text: str) -> str:
    letter = chr(ord("A") + index) if index < 26 else str(index + 1)
    if len(text) > _MAX_OPTION_LABEL:
        text = text[:_MAX_OPTION_LABEL - 1] + "…"
    return f"{letter}) {text}"


def question_keyboard(session: AttemptSession) -> InlineKeyboardMarkup:
    """Options of the current question plus navigation, or the confirmation row."""
    question = session.current_question
    answer = session.current_answer
    rows = []

    if question.kind is QuestionType.SINGLE:
        for i, option in enumerate(question.options):
            mark = "🔘" if answer.option_id == option.option_id else "⚪"
            rows.append([InlineKeyboardButton(
                text=f"{mark} {_label(i, option.text)}",
                callback_data=f"att:opt:{option.option_id}",
            )])
    elif question.kind is QuestionType.MULTIPLE:
        for i, option in enumerate(question.options):
            mark = "☑️" if option.option_id in answer.option_ids else "⬜"
            rows.append([InlineKeyboardButton(
                text=f"{mark} {_label(i, option.text)}",
                callback_data=f"att:opt:{option.option_id}",
            )])

    if session.state is SessionState.CONFIRMING:
        rows.append([
            InlineKeyboardButton(text="✅ Yes, submit", callback_data="att:confirm"),
            InlineKeyboardButton(text="↩️ Continue test", callback_data="att:cancel"),
        ])
        return InlineKeyboardMarkup(inline_keyboard=rows)

    index = session.current_index
    if not answer.is_empty():
        rows.append([InlineKeyboardButton(text="🧹 Clear answer", callback_data=f"att:clear:{index}")])

    navigation = []
    if index > 0:
        navigation.append(InlineKeyboardButton(text="⬅️ Previous", callback_data=f"att:prev:{index}"))
    navigation.append(InlineKeyboardButton(text="🔢 Questions", callback_data="att:grid"))
    next_text = "🏁 Finish" if session.is_last else "Next ➡️"
    navigation.append(InlineKeyboardButton(text=next_text, callback_data=f"att:next:{index}"))
    rows.append(navigation)

    rows.append([
        InlineKeyboardButton(text="📤 Submit test", callback_data=f"att:submit:{index}"),
        InlineKeyboardButton(text="🚪 Leave", callback_data="att:leave"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def navigator_keyboard(session: AttemptSession) -> InlineKeyboardMarkup:
    """Grid of all questions with their answered/seen marks."""
    rows = []
    row = []
    for index in range(session.total):
        mark = _STATUS_MARKS[session.question_status(index)]
        current = "•" if index == session.current_index else ""
        row.append(InlineKeyboardButton(
            text=f"{current}{mark}{index + 1}",
            callback_data=f"att:jump:{index}",
        ))
        if len(row) == _GRID_WIDTH:
            rows.append(row)
            row = []
    if row:
        rows.append(row)

    rows.append([InlineKeyboardButton(text="↩️ Back to question", callback_data="att:back")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def retry_submit_keyboard() -> InlineKeyboardMarkup:
    """Shown after a failed final submission."""
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="🔄 Submit again", callback_data="att:confirm")],
    ])


def open_tests_keyboard(tests) -> InlineKeyboardMarkup:
    """One button per open test."""
    buttons = []
    for test in tests:
        buttons.append([InlineKeyboardButton(
            text=f"▶️ {test.name} ({test.duration} min)",
            callback_data=f"test:start:{test.test_id}",
        )])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def completed_tests_keyboard(tests) -> InlineKeyboardMarkup:
    buttons = []
    for test in tests:
        buttons.append([InlineKeyboardButton(
            text=f"📊 {test.name}",
            callback_data=f"result:{test.test_id}",
        )])
    return InlineKeyboardMarkup(inline_keyboard=buttons)
