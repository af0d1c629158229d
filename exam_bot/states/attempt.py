"""FSM states while a test is being taken."""
from aiogram.fsm.state import State, StatesGroup


class AttemptFlow(StatesGroup):
    """Routes plain text to the running attempt."""

    taking_test = State()           # Text messages are free-text answers
