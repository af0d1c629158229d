"""Live attempt sessions, one per Telegram user.

Sessions hold asyncio tasks and an open HTTP client, so they live in memory
and not in FSM storage.
"""
import logging
from typing import Dict, Optional

from .session import AttemptSession

logger = logging.getLogger(__name__)

_active_sessions: Dict[int, AttemptSession] = {}


def get_session(user_id: int) -> Optional[AttemptSession]:
    """Get the live session of a user."""
    return _active_sessions.get(user_id)


def register_session(session: AttemptSession) -> None:
    """Make `session` the user's live session, abandoning any previous one."""
    user_id = session.context.user_id
    previous = _active_sessions.get(user_id)
    if previous is not None and previous is not session:
        logger.info("User %d replaced session of test %d", user_id, previous.test_id)
        previous.close()
    _active_sessions[user_id] = session


def close_session(user_id: int) -> Optional[AttemptSession]:
    """Close and forget the user's session. Returns it, or None if there was none."""
    session = _active_sessions.pop(user_id, None)
    if session is not None:
        session.close()
    return session


def close_all() -> int:
    """Close every live session (bot shutdown). Returns how many were closed."""
    sessions = list(_active_sessions.values())
    _active_sessions.clear()
    for session in sessions:
        session.close()
    return len(sessions)
