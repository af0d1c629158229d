"""Start, help and logout command handlers."""
import logging

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from aiogram.fsm.context import FSMContext

from attempt.registry import close_session, get_session
from database.crud import delete_user, user_exists
from states.registration import RegistrationStates

logger = logging.getLogger(__name__)
router = Router()

HELP_TEXT = (
    "Available commands:\n"
    "/tests - Open tests\n"
    "/results - Completed tests and scores\n"
    "/logout - Unlink your portal account\n"
    "/help - This help"
)


async def _warn_if_in_test(message: Message) -> bool:
    """Reply with the focus warning if the user is in the middle of a test."""
    session = get_session(message.from_user.id)
    if session is None:
        return False
    warning = session.note_focus_lost()
    if warning is None:
        return False
    await message.answer(warning)
    return True


@router.message(Command("start"))
async def cmd_start(message: Message, state: FSMContext):
    """
    Handle /start command.

    If user is linked, show the command list.
    If not, ask for the portal access token.
    """
    if await _warn_if_in_test(message):
        return

    user_id = message.from_user.id

    if await user_exists(user_id):
        await message.answer("👋 Welcome back!\n\n" + HELP_TEXT)
        return

    await message.answer(
        "👋 Welcome to the exam bot!\n\n"
        "Here you can take the tests assigned to you on the exam portal "
        "and see your results.\n\n"
        "To begin, send your portal access token.\n"
        "<i>The token will be encrypted; the message with it is deleted.</i>",
        parse_mode="HTML"
    )
    await state.set_state(RegistrationStates.waiting_for_token)


@router.message(Command("help"))
async def cmd_help(message: Message):
    if await _warn_if_in_test(message):
        return
    await message.answer(HELP_TEXT)


@router.message(Command("logout"))
async def cmd_logout(message: Message, state: FSMContext):
    """Leave any running test and forget the stored token and snapshots."""
    user_id = message.from_user.id

    session = close_session(user_id)
    if session is not None:
        logger.info("User %d logged out during test %d", user_id, session.test_id)
    await state.clear()

    if await delete_user(user_id):
        await message.answer("🔓 Your portal account is unlinked. Use /start to link it again.")
    else:
        await message.answer("You have no linked account. Use /start to link one.")
