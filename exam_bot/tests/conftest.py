"""Common fixtures for the exam bot tests."""
import asyncio
import os

from cryptography.fernet import Fernet

# Settings are created at import time; required values must exist first
os.environ.setdefault("BOT_TOKEN", "123456:TEST")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())

import pytest  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

from attempt.session import AttemptContext, AttemptSession  # noqa: E402
from core import database  # noqa: E402
from portal_api.models import (  # noqa: E402
    FinalResult, Option, Question, QuestionRef, QuestionType, RestoredAnswer,
)


@pytest.fixture
def single_question():
    """Single-select question with two options."""
    return Question(
        question_id=1,
        text="2 + 2 = ?",
        kind=QuestionType.SINGLE,
        options=[Option(option_id=10, text="4"), Option(option_id=11, text="5")],
        total_marks=1,
    )


@pytest.fixture
def multiple_question():
    """Multi-select question with three options."""
    return Question(
        question_id=2,
        text="Pick the prime numbers",
        kind=QuestionType.MULTIPLE,
        options=[
            Option(option_id=20, text="2"),
            Option(option_id=21, text="3"),
            Option(option_id=22, text="4"),
        ],
        total_marks=2,
        negative_marks=0.5,
    )


@pytest.fixture
def text_question():
    """Free-text question."""
    return Question(
        question_id=3,
        text="Name the capital of France",
        kind=QuestionType.TEXT,
        total_marks=1,
    )


@pytest.fixture
def questions(single_question, multiple_question, text_question):
    return [single_question, multiple_question, text_question]


@pytest.fixture
def final_result():
    return FinalResult(
        total_questions=3,
        attempted=3,
        unattempted=0,
        correct=2,
        wrong=1,
        final_score="66.67",
        final_result="Pass",
        marks_awarded=3,
        marks_deducted=0.5,
        total_marks_awarded=2.5,
    )


@pytest.fixture
def mock_client(questions, final_result):
    """Portal client serving the three fixture questions."""
    by_id = {question.question_id: question for question in questions}

    client = AsyncMock()
    client.get_question_refs.return_value = [
        QuestionRef(question_id=question.question_id) for question in questions
    ]
    client.get_question.side_effect = lambda test_id, question_id: by_id[question_id]
    client.get_restoration_state.return_value = []
    client.upsert_answer.return_value = None
    client.submit_final_result.return_value = final_result
    return client


@pytest.fixture
def restored_single():
    """Server record: option 11 answered for question 1."""
    return RestoredAnswer(question_id=1, status="answered", option_ids=[11])


@pytest.fixture
def snapshot_store():
    """
    Patches the snapshot CRUD used by the session.

    Yields a dict with the three AsyncMocks; load returns None by default.
    """
    with patch("attempt.session.save_snapshot", new_callable=AsyncMock) as save, \
            patch("attempt.session.load_snapshot", new_callable=AsyncMock) as load, \
            patch("attempt.session.delete_snapshot", new_callable=AsyncMock) as delete:
        load.return_value = None
        yield {"save": save, "load": load, "delete": delete}


@pytest.fixture
def context():
    return AttemptContext(
        user_id=12345,
        test_id=7,
        token="secret-token",
        duration_minutes=30,
        test_name="Algebra quiz",
    )


@pytest.fixture
async def make_session(context, mock_client, snapshot_store):
    """Factory for sessions over the mock client; closes them afterwards."""
    created = []

    def _make(**kwargs):
        kwargs.setdefault("notify", AsyncMock())
        kwargs.setdefault("autosave_interval", 3600)
        session = AttemptSession(
            kwargs.pop("context", context),
            kwargs.pop("client", mock_client),
            **kwargs,
        )
        created.append(session)
        return session

    yield _make

    for session in created:
        session._stop_timers()
    await asyncio.sleep(0)


@pytest.fixture
async def temp_db(tmp_path):
    """Fresh SQLite database installed as the global instance."""
    db = await database.init_database(str(tmp_path / "test.db"))
    previous = database.db
    database.db = db
    yield db
    database.db = previous
    await db.close()
