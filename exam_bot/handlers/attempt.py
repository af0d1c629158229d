"""Test-taking screen: answers, navigation, submission."""
import logging
from typing import Optional, Tuple

from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from attempt.exceptions import InvalidAnswerError, SessionStateError, SubmissionError
from attempt.registry import close_session, get_session
from attempt.session import AttemptSession, EventKind, SessionEvent, SessionState
from keyboards.attempt_kb import navigator_keyboard, question_keyboard, retry_submit_keyboard
from portal_api.models import QuestionType
from states.attempt import AttemptFlow
from utils.formatting import format_question, format_result

logger = logging.getLogger(__name__)

router = Router()

NO_SESSION_TEXT = "This test session is over. Open /tests to see your tests."
LEFT_TEXT = (
    "🚪 You left the test. Your answers are saved; "
    "you can continue from /tests while the test is open."
)

# Buttons bound to the question they were shown with
INDEXED_ACTIONS = {"clear", "prev", "next", "submit"}


class ChatNotifier:
    """Delivers session events to the student's chat."""

    def __init__(self, bot: Bot, chat_id: int, user_id: int, state: FSMContext, test_name: str = ""):
        self.bot = bot
        self.chat_id = chat_id
        self.user_id = user_id
        self.state = state
        self.test_name = test_name

    async def __call__(self, event: SessionEvent) -> None:
        if event.kind is EventKind.COMPLETED:
            session = get_session(self.user_id)
            if session is not None and session.state is SessionState.COMPLETED:
                close_session(self.user_id)
            await self.state.clear()
            await self.bot.send_message(
                self.chat_id,
                format_result(event.result, self.test_name),
                parse_mode="HTML",
            )
        elif event.kind is EventKind.SUBMIT_FAILED:
            await self.bot.send_message(
                self.chat_id, event.message, reply_markup=retry_submit_keyboard()
            )
        else:
            await self.bot.send_message(self.chat_id, event.message)


async def send_question(message: Message, session: AttemptSession) -> None:
    """Send the current question as a new, protected message."""
    await message.answer(
        format_question(session),
        reply_markup=question_keyboard(session),
        parse_mode="HTML",
        protect_content=session.protect_content,
    )


async def _show_question(callback: CallbackQuery, session: AttemptSession) -> None:
    try:
        await callback.message.edit_text(
            format_question(session),
            reply_markup=question_keyboard(session),
            parse_mode="HTML",
        )
    except TelegramBadRequest as e:
        # "message is not modified" after a repeated tap
        logger.debug("Question message not edited: %s", e)


async def _drop_keyboard(callback: CallbackQuery) -> None:
    try:
        await callback.message.edit_reply_markup(reply_markup=None)
    except TelegramBadRequest as e:
        logger.debug("Keyboard not removed: %s", e)


def _parse_callback_data(data: str) -> Optional[Tuple[str, Optional[int]]]:
    """
    Parses callback_data of the form att:action[:number].

    Returns:
        Tuple (action, number) or None when malformed
    """
    try:
        parts = data.split(":")
        if len(parts) < 2 or parts[0] != "att":
            return None
        number = int(parts[2]) if len(parts) > 2 else None
        return parts[1], number
    except ValueError:
        return None


async def _handle_action(
    callback: CallbackQuery,
    state: FSMContext,
    session: AttemptSession,
    action: str,
    number: Optional[int],
) -> None:
    user_id = callback.from_user.id

    if action in INDEXED_ACTIONS and number != session.current_index:
        logger.info("User %d pressed a button of an older question: %s", user_id, callback.data)
        return

    if action == "opt" and number is not None:
        if session.current_question.kind is QuestionType.MULTIPLE:
            await session.toggle_option(number)
        else:
            await session.choose_option(number)
        await _show_question(callback, session)

    elif action == "clear":
        await session.clear_answer()
        await _show_question(callback, session)

    elif action == "prev":
        session.go_to_previous()
        await _show_question(callback, session)

    elif action == "next":
        await session.go_to_next()
        if session.state is SessionState.RUNNING:
            await _show_question(callback, session)
        else:
            await _drop_keyboard(callback)

    elif action == "grid":
        await callback.message.edit_reply_markup(reply_markup=navigator_keyboard(session))

    elif action == "jump" and number is not None:
        session.jump_to(number)
        await _show_question(callback, session)

    elif action == "back":
        await _show_question(callback, session)

    elif action == "submit":
        session.request_submit()
        await _show_question(callback, session)

    elif action == "cancel":
        session.cancel_submit()
        await _show_question(callback, session)

    elif action == "confirm":
        await _drop_keyboard(callback)
        await session.confirm_submit()

    elif action == "leave":
        close_session(user_id)
        await state.clear()
        await callback.message.edit_text(LEFT_TEXT)

    else:
        logger.warning("Unknown attempt action in callback_data: %s", callback.data)


@router.callback_query(F.data.startswith("att:"))
async def cb_attempt(callback: CallbackQuery, state: FSMContext):
    """All buttons of the test-taking screen."""
    try:
        parsed = _parse_callback_data(callback.data)
        if parsed is None:
            logger.warning("Invalid callback_data: %s", callback.data)
            return

        session = get_session(callback.from_user.id)
        if session is None:
            await callback.message.answer(NO_SESSION_TEXT)
            return

        action, number = parsed
        try:
            await _handle_action(callback, state, session, action, number)
        except SubmissionError:
            # The student already got the retry button from the session
            pass
        except SessionStateError as e:
            logger.info("User %d: %s (%s)", callback.from_user.id, e, callback.data)
        except (InvalidAnswerError, IndexError) as e:
            logger.warning("User %d sent a stale answer button: %s", callback.from_user.id, e)
    finally:
        await callback.answer()


@router.message(AttemptFlow.taking_test)
async def on_message_in_test(message: Message, state: FSMContext):
    """Free-text answers; anything else while the test runs gets a warning."""
    session = get_session(message.from_user.id)
    if session is None:
        await state.clear()
        await message.answer(NO_SESSION_TEXT)
        return

    text = message.text
    if (
        text is not None
        and not text.startswith("/")
        and session.state is SessionState.RUNNING
        and session.current_question.kind is QuestionType.TEXT
    ):
        await session.set_text(text.strip())
        await send_question(message, session)
        return

    warning = session.note_focus_lost()
    if warning:
        await message.answer(warning)
