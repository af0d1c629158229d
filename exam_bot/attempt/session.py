"""
Timed attempt of one student at one test.

The session loads the question set, keeps the student's answers, persists
them locally and to the portal, counts down the test duration and runs the
final submission:

    running -> confirming -> submitting -> completed
    running -> submitting                (time is over, no confirmation)

All work happens on the bot's event loop; the clock and the periodic sync are
asyncio tasks interleaved with handler coroutines.
"""
import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from database.crud import delete_snapshot, load_snapshot, save_snapshot
from portal_api.client import PortalClient
from portal_api.exceptions import PortalAPIError
from portal_api.models import FinalResult, Question

from .answers import Answer, AnswerSheet
from .clock import SessionClock
from .exceptions import InvalidAnswerError, SessionLoadError, SessionStateError, SubmissionError

logger = logging.getLogger(__name__)

AUTOSAVE_INTERVAL = 30.0

FOCUS_WARNING = "⚠️ Switching away from the test is not allowed!"

# Detached unload-time tasks; referenced here until they finish
_background_tasks: Set[asyncio.Task] = set()


class SessionState(str, Enum):
    LOADING = "loading"
    RUNNING = "running"
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    CLOSED = "closed"


class EventKind(str, Enum):
    WARNING = "warning"
    TIMED_OUT = "timed_out"
    COMPLETED = "completed"
    SUBMIT_FAILED = "submit_failed"


@dataclass
class SessionEvent:
    """Something the student has to be told about."""
    kind: EventKind
    message: str = ""
    result: Optional[FinalResult] = None


@dataclass
class AttemptContext:
    """Everything the session needs to know about who takes which test."""
    user_id: int
    test_id: int
    token: str
    duration_minutes: int
    test_name: str = ""


Notifier = Callable[[SessionEvent], Awaitable[None]]


class AttemptSession:
    """One student's attempt at one test, from load to final scoring."""

    def __init__(
        self,
        context: AttemptContext,
        client: PortalClient,
        notify: Optional[Notifier] = None,
        autosave_interval: float = AUTOSAVE_INTERVAL,
        clock_tick: float = 1.0,
    ):
        """
        Args:
            context: Test, student and duration captured when the attempt started
            client: Portal client authorised with the student's token; owned by
                the session from now on and closed by close()
            notify: Async callback receiving SessionEvent
            autosave_interval: Seconds between periodic syncs of the current answer
            clock_tick: Wall-clock seconds per countdown second
        """
        self.context = context
        self.client = client
        self.autosave_interval = autosave_interval
        self.clock_tick = clock_tick
        self._notify = notify

        self.state = SessionState.LOADING
        self.questions: List[Question] = []
        self.answers = AnswerSheet([])
        self.current_index = 0
        self.seen: Set[int] = set()
        self.synced: Set[int] = set()
        self.clock: Optional[SessionClock] = None
        self.timed_out = False
        self.result: Optional[FinalResult] = None

        self._autosave_task: Optional[asyncio.Task] = None
        self._scoring = False
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def test_id(self) -> int:
        return self.context.test_id

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_index]

    @property
    def current_answer(self) -> Answer:
        return self.answers[self.current_question.question_id]

    @property
    def is_last(self) -> bool:
        return self.current_index == len(self.questions) - 1

    @property
    def remaining_seconds(self) -> int:
        return self.clock.remaining if self.clock else 0

    @property
    def protect_content(self) -> bool:
        """Whether question messages must be protected from forwarding and saving."""
        return self.state is SessionState.RUNNING

    def question_status(self, index: int) -> str:
        """'answered', 'seen' or 'new', for the navigator grid."""
        question_id = self.questions[index].question_id
        if not self.answers[question_id].is_empty():
            return "answered"
        if question_id in self.seen:
            return "seen"
        return "new"

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Load the test and start the clock."""
        await self.load()
        self.start()

    async def load(self) -> None:
        """
        Fetch questions and restore earlier answers.

        Raises:
            SessionLoadError: the question list or every single question failed
        """
        if self.state is not SessionState.LOADING:
            raise SessionStateError("Session is already loaded")

        try:
            refs = await self.client.get_question_refs(self.test_id)
        except PortalAPIError as e:
            logger.error("Failed to load question list of test %d: %s", self.test_id, e)
            raise SessionLoadError("Failed to load the test") from e

        questions = []
        for ref in refs:
            try:
                questions.append(await self.client.get_question(self.test_id, ref.question_id))
            except PortalAPIError as e:
                # Degraded: the attempt continues without this question
                logger.error(
                    "Failed to load question %d of test %d: %s",
                    ref.question_id, self.test_id, e,
                )

        if not questions:
            raise SessionLoadError("No questions could be loaded")

        self.questions = questions
        self.answers = AnswerSheet(questions)
        self.clock = SessionClock(
            self.context.duration_minutes * 60, self._on_timeout, tick=self.clock_tick
        )

        # Server first, local snapshot on top: unsent keystrokes win
        await self._restore_from_server()
        await self._restore_from_snapshot()

        logger.info(
            "Test %d loaded for user %d: %d/%d questions, %d answered",
            self.test_id, self.context.user_id, len(questions), len(refs),
            self.answers.attempted(),
        )

    async def _restore_from_server(self) -> None:
        try:
            records = await self.client.get_restoration_state(self.test_id)
        except PortalAPIError as e:
            logger.warning("Restoration state of test %d unavailable: %s", self.test_id, e)
            return

        by_id = {question.question_id: question for question in self.questions}
        for record in records:
            question = by_id.get(record.question_id)
            if question is not None and self.answers.apply_restored(question, record):
                self.synced.add(question.question_id)

    async def _restore_from_snapshot(self) -> None:
        try:
            raw = await load_snapshot(self.context.user_id, self.test_id)
        except sqlite3.Error as e:
            logger.warning("Failed to read snapshot of test %d: %s", self.test_id, e)
            return

        if raw is None:
            return

        try:
            applied = self.answers.merge_snapshot(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable snapshot of test %d: %s", self.test_id, e)
            return

        logger.debug("Restored %d answers of test %d from snapshot", applied, self.test_id)

    def start(self) -> None:
        """Mark the first question seen and start the clock and periodic sync."""
        if self.state is not SessionState.LOADING or not self.questions:
            raise SessionStateError("Session must be loaded before it starts")

        self.seen.add(self.questions[0].question_id)
        self.state = SessionState.RUNNING
        self.clock.start()
        self._autosave_task = asyncio.create_task(self._autosave_loop())

    # ------------------------------------------------------------------
    # Answer mutation
    # ------------------------------------------------------------------

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise SessionStateError(f"Not allowed while session is {self.state.value}")

    def _require_option(self, option_id: int) -> None:
        if not self.current_question.has_option(option_id):
            raise InvalidAnswerError(
                f"Option {option_id} does not belong to question "
                f"{self.current_question.question_id}"
            )

    async def choose_option(self, option_id: int) -> None:
        """Select the option of the current single-select question."""
        self._require(SessionState.RUNNING)
        self._require_option(option_id)
        self.current_answer.select(option_id)
        await self._save_snapshot()

    async def toggle_option(self, option_id: int) -> None:
        """Add or remove an option of the current multi-select question."""
        self._require(SessionState.RUNNING)
        self._require_option(option_id)
        self.current_answer.toggle(option_id)
        await self._save_snapshot()

    async def set_text(self, text: str) -> None:
        """Set the answer of the current free-text question."""
        self._require(SessionState.RUNNING)
        self.current_answer.write(text)
        await self._save_snapshot()

    async def clear_answer(self) -> None:
        self._require(SessionState.RUNNING)
        self.current_answer.clear()
        await self._save_snapshot()

    async def _save_snapshot(self) -> None:
        try:
            await save_snapshot(self.context.user_id, self.test_id, self.answers.dump())
        except sqlite3.Error as e:
            logger.error("Failed to save snapshot of test %d: %s", self.test_id, e)
            await self._emit(EventKind.WARNING, "⚠️ Could not save your answers locally.")

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def go_to_next(self) -> Optional[FinalResult]:
        """
        Save the current answer and move on.

        On the last question this finishes the test without confirmation.

        Returns:
            FinalResult if the test was finished and scored, otherwise None
        """
        self._require(SessionState.RUNNING)
        index = self.current_index
        question_id = self.current_question.question_id

        await self._sync_current()
        if self.state is not SessionState.RUNNING:
            # Time ran out while the answer was being saved
            return None
        if self.current_index != index:
            # Another tap moved the student while the answer was being saved
            return None

        self.seen.add(question_id)
        if index < len(self.questions) - 1:
            self.current_index = index + 1
            return None

        self.state = SessionState.SUBMITTING
        return await self._finalize(persist=False)

    def go_to_previous(self) -> None:
        self._require(SessionState.RUNNING)
        self.seen.add(self.current_question.question_id)
        if self.current_index > 0:
            self.current_index -= 1

    def jump_to(self, index: int) -> None:
        """Open question `index` from the navigator grid."""
        self._require(SessionState.RUNNING)
        if not 0 <= index < len(self.questions):
            raise IndexError(f"Question index {index} out of range")
        self.seen.add(self.questions[index].question_id)
        self.current_index = index

    # ------------------------------------------------------------------
    # Remote persistence
    # ------------------------------------------------------------------

    async def _sync_current(self) -> bool:
        """
        Upsert the current answer if it is not empty.

        Returns:
            False if the portal rejected the save (the student was warned)
        """
        question_id = self.current_question.question_id
        answer = self.answers[question_id]
        if answer.is_empty():
            return True

        try:
            await self.client.upsert_answer(self.test_id, answer.to_payload(question_id))
        except PortalAPIError as e:
            logger.warning(
                "Failed to save answer to question %d of test %d: %s",
                question_id, self.test_id, e,
            )
            await self._emit(EventKind.WARNING, "⚠️ Failed to save answer.")
            return False

        self.synced.add(question_id)
        return True

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self.autosave_interval)
            if self.state is SessionState.RUNNING:
                await self._sync_current()

    def _send_beacon(self, payload: Optional[Dict[str, Any]]) -> None:
        task = asyncio.create_task(self._beacon(payload))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    async def _beacon(self, payload: Optional[Dict[str, Any]]) -> None:
        try:
            if payload is not None:
                await self.client.upsert_answer(self.test_id, payload)
        except PortalAPIError as e:
            logger.debug("Unload save of test %d not delivered: %s", self.test_id, e)
        finally:
            await self.client.close()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def request_submit(self) -> None:
        """Student asked to finish; waits for confirm_submit() or cancel_submit()."""
        self._require(SessionState.RUNNING)
        self.state = SessionState.CONFIRMING

    def cancel_submit(self) -> None:
        self._require(SessionState.CONFIRMING)
        self.state = SessionState.RUNNING

    async def confirm_submit(self) -> Optional[FinalResult]:
        """
        Finish the test after confirmation, or retry a failed submission.

        Returns:
            FinalResult, or None if a submission is already in flight

        Raises:
            SubmissionError: scoring request failed; call again to retry
        """
        if self._scoring:
            return None
        if self.state is SessionState.CONFIRMING:
            self.state = SessionState.SUBMITTING
        elif self.state is not SessionState.SUBMITTING:
            raise SessionStateError(f"Nothing to submit while session is {self.state.value}")
        return await self._finalize(persist=True)

    async def _on_timeout(self) -> None:
        if self.state not in (SessionState.RUNNING, SessionState.CONFIRMING):
            return

        self.timed_out = True
        self.state = SessionState.SUBMITTING
        await self._emit(EventKind.TIMED_OUT, "⏰ Time's up! Submitting your test...")
        try:
            await self._finalize(persist=True)
        except SubmissionError:
            logger.warning("Automatic submission of test %d failed", self.test_id)

    async def _finalize(self, persist: bool) -> Optional[FinalResult]:
        if self._scoring:
            return None
        self._scoring = True
        try:
            if persist:
                await self._sync_current()
            attempted = self.answers.attempted()
            unattempted = self.answers.unattempted()

            try:
                result = await self.client.submit_final_result(self.test_id)
            except PortalAPIError as e:
                logger.error("Failed to submit final result of test %d: %s", self.test_id, e)
                await self._emit(
                    EventKind.SUBMIT_FAILED, "❌ Failed to submit final result. Please try again."
                )
                raise SubmissionError(str(e)) from e
        finally:
            self._scoring = False

        result.attempted = attempted
        result.unattempted = unattempted
        await self._complete(result)
        return result

    async def _complete(self, result: FinalResult) -> None:
        self.result = result
        self.state = SessionState.COMPLETED
        self._stop_timers()

        try:
            await delete_snapshot(self.context.user_id, self.test_id)
        except sqlite3.Error as e:
            logger.warning("Failed to delete snapshot of test %d: %s", self.test_id, e)

        logger.info(
            "Test %d completed by user %d: %s/%s attempted",
            self.test_id, self.context.user_id, result.attempted, result.total_questions,
        )
        await self._emit(EventKind.COMPLETED, result=result)

    # ------------------------------------------------------------------
    # Teardown and advisory checks
    # ------------------------------------------------------------------

    def note_focus_lost(self) -> Optional[str]:
        """Warning to show when the student leaves the test flow, None if not running."""
        if self.state is not SessionState.RUNNING:
            return None
        logger.info("User %d left the flow of test %d", self.context.user_id, self.test_id)
        return FOCUS_WARNING

    def close(self) -> None:
        """
        Abandon the session (student left, or the bot is stopping).

        A non-empty current answer is sent in the background without waiting
        for the portal; the local snapshot is kept for the next sitting.
        """
        if self._closed:
            return
        self._closed = True

        payload = None
        if self.state in (SessionState.RUNNING, SessionState.CONFIRMING) and self.questions:
            answer = self.current_answer
            if not answer.is_empty():
                payload = answer.to_payload(self.current_question.question_id)

        self._stop_timers()
        if self.state is not SessionState.COMPLETED:
            self.state = SessionState.CLOSED
        self._send_beacon(payload)

    def _stop_timers(self) -> None:
        if self.clock is not None:
            self.clock.stop()
        task = self._autosave_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self._autosave_task = None

    async def _emit(
        self, kind: EventKind, message: str = "", result: Optional[FinalResult] = None
    ) -> None:
        if self._notify is None:
            return
        try:
            await self._notify(SessionEvent(kind=kind, message=message, result=result))
        except Exception:
            logger.exception("Failed to deliver %s event of test %d", kind.value, self.test_id)


async def drain_background_tasks(timeout: float = 5.0) -> None:
    """Give detached unload-time saves a chance to finish (bot shutdown)."""
    if _background_tasks:
        await asyncio.wait(set(_background_tasks), timeout=timeout)
