"""Handlers for /tests and /results: listing tests, starting an attempt, results."""
import html
import logging
from typing import Optional

from aiogram import Bot, F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from attempt.exceptions import SessionLoadError
from attempt.registry import get_session, register_session
from attempt.session import AttemptContext, AttemptSession
from config import settings
from handlers.attempt import ChatNotifier, send_question
from keyboards.attempt_kb import completed_tests_keyboard, open_tests_keyboard
from portal_api.exceptions import AuthenticationError, InvalidResponseError, PortalAPIError
from portal_api.models import Dashboard
from states.attempt import AttemptFlow
from utils.formatting import (
    format_completed_tests,
    format_open_tests,
    format_result,
)
from utils.token_manager import create_client, ensure_token

logger = logging.getLogger(__name__)

router = Router()

RELINK_TEXT = "❌ Could not sign in to the portal. Please link your token again: /start"
UNAVAILABLE_TEXT = "⚠️ The exam portal is temporarily unavailable, try again later"


# ============================================================================
# HELPERS
# ============================================================================

def _parse_test_id(data: str, prefix: str) -> Optional[int]:
    """Test id from callback_data of the form <prefix><test_id>."""
    if not data.startswith(prefix):
        return None
    try:
        return int(data[len(prefix):])
    except ValueError:
        return None


async def _fetch_dashboard(token: str) -> Dashboard:
    """
    Raises:
        AuthenticationError: token rejected
        PortalAPIError: API error
    """
    client = create_client(token)
    try:
        return await client.get_dashboard()
    finally:
        await client.close()


async def _in_test(message: Message, user_id: int) -> bool:
    session = get_session(user_id)
    if session is None:
        return False
    warning = session.note_focus_lost()
    if warning is None:
        return False
    await message.answer(warning)
    return True


# ============================================================================
# /tests
# ============================================================================

@router.message(Command("tests"))
async def cmd_tests(message: Message):
    """Open tests of the student, one button each."""
    user_id = message.from_user.id

    if await _in_test(message, user_id):
        return

    try:
        token = await ensure_token(user_id)
    except AuthenticationError:
        await message.answer("You have not linked your portal account yet: /start")
        return

    try:
        dashboard = await _fetch_dashboard(token)
    except AuthenticationError:
        logger.error("Portal rejected token of user_id=%d", user_id)
        await message.answer(RELINK_TEXT)
        return
    except PortalAPIError as e:
        logger.error("Dashboard error for user_id=%d: %s", user_id, e)
        await message.answer(UNAVAILABLE_TEXT)
        return

    await message.answer(
        format_open_tests(dashboard.open_tests),
        reply_markup=open_tests_keyboard(dashboard.open_tests),
        parse_mode="HTML",
    )


@router.callback_query(F.data.startswith("test:start:"))
async def cb_start_test(callback: CallbackQuery, state: FSMContext, bot: Bot):
    """Start (or resume) an attempt and show the first question."""
    try:
        test_id = _parse_test_id(callback.data, "test:start:")
        if test_id is None:
            logger.warning("Invalid callback_data: %s", callback.data)
            return
        await _start_attempt(callback, state, bot, test_id)
    finally:
        await callback.answer()


async def _start_attempt(callback: CallbackQuery, state: FSMContext, bot: Bot, test_id: int) -> None:
    user_id = callback.from_user.id

    if await _in_test(callback.message, user_id):
        return

    try:
        token = await ensure_token(user_id)
    except AuthenticationError:
        await callback.message.edit_text(RELINK_TEXT)
        return

    client = create_client(token)
    try:
        # The test must still be open for this student; the dashboard also
        # carries the duration
        dashboard = await client.get_dashboard()
        test = next((t for t in dashboard.open_tests if t.test_id == test_id), None)
        if test is None:
            logger.warning("User %d tried to start test %d that is not open", user_id, test_id)
            await client.close()
            await callback.message.edit_text("This test is no longer open. See /tests")
            return

        try:
            await client.start_test(test_id)
        except InvalidResponseError as e:
            # The portal refuses a second start of the same attempt; resume it
            logger.info("start_test %d for user %d refused, resuming: %s", test_id, user_id, e)

    except AuthenticationError:
        await client.close()
        logger.error("Portal rejected token of user_id=%d", user_id)
        await callback.message.edit_text(RELINK_TEXT)
        return
    except PortalAPIError as e:
        await client.close()
        logger.error("Failed to start test %d for user_id=%d: %s", test_id, user_id, e)
        await callback.message.edit_text(UNAVAILABLE_TEXT)
        return

    context = AttemptContext(
        user_id=user_id,
        test_id=test_id,
        token=token,
        duration_minutes=test.duration,
        test_name=test.name,
    )
    session = AttemptSession(
        context,
        client,
        notify=ChatNotifier(bot, callback.message.chat.id, user_id, state, test.name),
        autosave_interval=settings.AUTOSAVE_INTERVAL,
        clock_tick=settings.CLOCK_TICK,
    )

    try:
        await session.open()
    except SessionLoadError as e:
        session.close()
        await callback.message.edit_text(f"❌ {e}. Please try again: /tests")
        return

    register_session(session)
    await state.set_state(AttemptFlow.taking_test)

    await callback.message.edit_text(
        f"▶️ <b>{html.escape(test.name)}</b> started: {session.total} questions, "
        f"{test.duration} min.",
        parse_mode="HTML",
    )
    await send_question(callback.message, session)


# ============================================================================
# /results
# ============================================================================

@router.message(Command("results"))
async def cmd_results(message: Message):
    """Completed tests with their score summaries."""
    user_id = message.from_user.id

    if await _in_test(message, user_id):
        return

    try:
        token = await ensure_token(user_id)
    except AuthenticationError:
        await message.answer("You have not linked your portal account yet: /start")
        return

    try:
        dashboard = await _fetch_dashboard(token)
    except AuthenticationError:
        logger.error("Portal rejected token of user_id=%d", user_id)
        await message.answer(RELINK_TEXT)
        return
    except PortalAPIError as e:
        logger.error("Dashboard error for user_id=%d: %s", user_id, e)
        await message.answer(UNAVAILABLE_TEXT)
        return

    await message.answer(
        format_completed_tests(dashboard.completed_tests),
        reply_markup=completed_tests_keyboard(dashboard.completed_tests),
        parse_mode="HTML",
    )


@router.callback_query(F.data.startswith("result:"))
async def cb_show_result(callback: CallbackQuery):
    """Full result card of a completed test."""
    try:
        test_id = _parse_test_id(callback.data, "result:")
        if test_id is None:
            logger.warning("Invalid callback_data: %s", callback.data)
            return

        user_id = callback.from_user.id
        try:
            token = await ensure_token(user_id)
        except AuthenticationError:
            await callback.message.answer(RELINK_TEXT)
            return

        client = create_client(token)
        try:
            result = await client.submit_final_result(test_id)
        except AuthenticationError:
            logger.error("Portal rejected token of user_id=%d", user_id)
            await callback.message.answer(RELINK_TEXT)
            return
        except PortalAPIError as e:
            logger.error("Result of test %d for user_id=%d failed: %s", test_id, user_id, e)
            await callback.message.answer(UNAVAILABLE_TEXT)
            return
        finally:
            await client.close()

        await callback.message.answer(format_result(result), parse_mode="HTML")
    finally:
        await callback.answer()
