"""Registration flow handlers: linking a portal access token."""
import logging

from aiogram import Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message
from aiogram.fsm.context import FSMContext

from database.crud import save_user
from portal_api.exceptions import AuthenticationError, PortalAPIError
from states.registration import RegistrationStates
from utils.token_manager import create_client

logger = logging.getLogger(__name__)

router = Router()

MIN_TOKEN_LENGTH = 10


@router.message(RegistrationStates.waiting_for_token)
async def process_token(message: Message, state: FSMContext):
    """Check the token against the portal and store it."""
    token = (message.text or "").strip()

    # Delete message with the token for security
    try:
        await message.delete()
    except TelegramBadRequest as e:
        logger.debug("Could not delete token message: %s", e)

    if len(token) < MIN_TOKEN_LENGTH or " " in token:
        await message.answer("This does not look like an access token. Try again:")
        return

    verify_msg = await message.answer("Checking the token with the portal...")

    user_id = message.from_user.id
    client = create_client(token)
    try:
        dashboard = await client.get_dashboard()

    except AuthenticationError:
        await verify_msg.edit_text(
            "❌ The portal rejected this token.\n\n"
            "Copy a fresh token and send it again:"
        )
        return

    except PortalAPIError as e:
        logger.error("Token check failed for user_id=%d: %s", user_id, e)
        await verify_msg.edit_text(
            f"⚠️ The portal is unavailable: {e}\n\n"
            "Try again later: /start"
        )
        await state.clear()
        return

    finally:
        await client.close()

    await save_user(
        user_id=user_id,
        username=message.from_user.username,
        first_name=message.from_user.first_name,
        portal_token=token,
        student_id=dashboard.student_id,
    )
    await state.clear()

    logger.info("User %d linked portal student %d", user_id, dashboard.student_id)

    name = f"{dashboard.first_name} {dashboard.last_name}".strip() or "student"
    college = f" ({dashboard.college_name})" if dashboard.college_name else ""
    await verify_msg.edit_text(
        f"✅ Linked as {name}{college}.\n\n"
        "Open /tests to see the tests available to you."
    )
