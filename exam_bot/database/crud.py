"""CRUD operations for database."""
from typing import Dict, Optional

from core.database import get_db
from core.encryption import decrypt, encrypt


# ============================================================================
# USER OPERATIONS
# ============================================================================

async def save_user(
    user_id: int,
    username: Optional[str],
    first_name: Optional[str],
    portal_token: str,
    student_id: Optional[int] = None,
) -> None:
    """Create or update a user; the access token is stored encrypted."""
    db = get_db()

    query = """
        INSERT INTO users (user_id, username, first_name, portal_token, student_id)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            username = excluded.username,
            first_name = excluded.first_name,
            portal_token = excluded.portal_token,
            student_id = excluded.student_id,
            last_seen = CURRENT_TIMESTAMP
    """

    await db.execute(query, (user_id, username, first_name, encrypt(portal_token), student_id))


async def get_user(user_id: int) -> Optional[Dict]:
    """
    Get user by Telegram ID with decrypted token.

    Returns:
        User dict or None. `portal_token` is None if it could not be decrypted.
    """
    db = get_db()

    query = """
        SELECT user_id, username, first_name, portal_token, student_id,
               registered_at, last_seen
        FROM users WHERE user_id = ?
    """
    row = await db.fetchone(query, (user_id,))

    if not row:
        return None

    return {
        "user_id": row[0],
        "username": row[1],
        "first_name": row[2],
        "portal_token": decrypt(row[3]),
        "student_id": row[4],
        "registered_at": row[5],
        "last_seen": row[6],
    }


async def delete_user(user_id: int) -> bool:
    """Forget a user and, through the foreign key, their snapshots."""
    db = get_db()
    deleted = await db.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
    return deleted > 0


async def user_exists(user_id: int) -> bool:
    """Check if user exists in database."""
    db = get_db()
    result = await db.fetchone("SELECT 1 FROM users WHERE user_id = ?", (user_id,))
    return result is not None


# ============================================================================
# ANSWER SNAPSHOTS
# ============================================================================

async def save_snapshot(user_id: int, test_id: int, answers: str) -> None:
    """Replace the stored answers of a user's attempt."""
    db = get_db()

    query = """
        INSERT INTO answer_snapshots (user_id, test_id, answers)
        VALUES (?, ?, ?)
        ON CONFLICT(user_id, test_id) DO UPDATE SET
            answers = excluded.answers,
            updated_at = CURRENT_TIMESTAMP
    """

    await db.execute(query, (user_id, test_id, answers))


async def load_snapshot(user_id: int, test_id: int) -> Optional[str]:
    """Stored answers of a user's attempt, or None."""
    db = get_db()

    query = "SELECT answers FROM answer_snapshots WHERE user_id = ? AND test_id = ?"
    row = await db.fetchone(query, (user_id, test_id))

    return row[0] if row else None


async def delete_snapshot(user_id: int, test_id: int) -> None:
    db = get_db()
    await db.execute(
        "DELETE FROM answer_snapshots WHERE user_id = ? AND test_id = ?",
        (user_id, test_id),
    )
