"""FSM states for linking a portal account."""
from aiogram.fsm.state import State, StatesGroup


class RegistrationStates(StatesGroup):
    """States for the token linking flow."""

    waiting_for_token = State()     # Waiting for the portal access token
