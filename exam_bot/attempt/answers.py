"""In-memory answers of one attempt and their snapshot codec."""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

from portal_api.models import Question, QuestionType, RestoredAnswer

from .exceptions import InvalidAnswerError

logger = logging.getLogger(__name__)


@dataclass
class Answer:
    """
    Current answer to one question.

    Only the field matching `kind` is meaningful: `option_id` for single-select,
    `option_ids` for multi-select, `text` for free text.
    """
    kind: QuestionType
    option_id: Optional[int] = None
    option_ids: List[int] = field(default_factory=list)
    text: Optional[str] = None

    def is_empty(self) -> bool:
        if self.kind is QuestionType.SINGLE:
            return self.option_id is None
        if self.kind is QuestionType.MULTIPLE:
            return not self.option_ids
        return not (self.text or "").strip()

    def _expect(self, kind: QuestionType) -> None:
        if self.kind is not kind:
            raise InvalidAnswerError(
                f"Operation needs a {kind.value} question, this one is {self.kind.value}"
            )

    def select(self, option_id: int) -> None:
        """Pick the single option of a single-select question."""
        self._expect(QuestionType.SINGLE)
        self.option_id = option_id

    def toggle(self, option_id: int) -> None:
        """Add or remove one option of a multi-select question."""
        self._expect(QuestionType.MULTIPLE)
        if option_id in self.option_ids:
            self.option_ids.remove(option_id)
        else:
            self.option_ids.append(option_id)

    def write(self, text: str) -> None:
        """Set the text of a free-text question."""
        self._expect(QuestionType.TEXT)
        self.text = text

    def clear(self) -> None:
        self.option_id = None
        self.option_ids = []
        self.text = None

    def to_payload(self, question_id: int) -> Dict[str, Any]:
        """Upsert body for this answer; the inactive field is None."""
        if self.kind is QuestionType.TEXT:
            return {"question_id": question_id, "option_id": None, "text": self.text or ""}
        if self.kind is QuestionType.MULTIPLE:
            return {"question_id": question_id, "option_id": list(self.option_ids), "text": None}
        return {"question_id": question_id, "option_id": self.option_id, "text": None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "option_id": self.option_id,
            "option_ids": list(self.option_ids),
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Answer":
        """Inverse of to_dict. Raises ValueError on malformed data."""
        try:
            kind = QuestionType(data["kind"])
            option_id = data.get("option_id")
            text = data.get("text")
            if text is not None and not isinstance(text, str):
                raise ValueError(f"Malformed answer text: {text!r}")
            return cls(
                kind=kind,
                option_id=int(option_id) if option_id is not None else None,
                option_ids=[int(i) for i in data.get("option_ids") or []],
                text=text,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed answer: {e}")


class AnswerSheet:
    """
    Answers keyed by question id, one entry per loaded question.

    The key set is fixed when the sheet is created; only the values change.
    """

    def __init__(self, questions: Iterable[Question]):
        self._answers: Dict[int, Answer] = {
            question.question_id: Answer(kind=question.kind) for question in questions
        }

    def __getitem__(self, question_id: int) -> Answer:
        return self._answers[question_id]

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._answers

    def __iter__(self) -> Iterator[int]:
        return iter(self._answers)

    def __len__(self) -> int:
        return len(self._answers)

    def replace(self, question_id: int, answer: Answer) -> None:
        """Swap the answer of a known question. Unknown ids raise KeyError."""
        current = self._answers[question_id]
        if current.kind is not answer.kind:
            raise InvalidAnswerError(
                f"Question {question_id} is {current.kind.value}, got {answer.kind.value}"
            )
        self._answers[question_id] = answer

    def attempted(self) -> int:
        return sum(1 for answer in self._answers.values() if not answer.is_empty())

    def unattempted(self) -> int:
        return len(self._answers) - self.attempted()

    def to_dict(self) -> Dict[int, Dict[str, Any]]:
        return {question_id: answer.to_dict() for question_id, answer in self._answers.items()}

    def dump(self) -> str:
        """Serialize the whole sheet for the local snapshot store."""
        return json.dumps(
            {str(question_id): answer for question_id, answer in self.to_dict().items()},
            ensure_ascii=False,
        )

    def merge_snapshot(self, raw: str) -> int:
        """
        Overlay a snapshot produced by dump().

        Only non-empty entries are applied, so an unanswered entry in the
        snapshot never erases an answer restored from the server. Entries for
        unknown questions or of a different kind are ignored.

        Returns:
            Number of entries applied

        Raises:
            ValueError: snapshot is not valid JSON of the expected shape
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Snapshot must be a JSON object")

        applied = 0
        for key, value in data.items():
            try:
                question_id = int(key)
            except ValueError:
                logger.debug("Snapshot key %r is not a question id", key)
                continue
            if question_id not in self._answers or not isinstance(value, dict):
                continue

            answer = Answer.from_dict(value)
            if answer.kind is not self._answers[question_id].kind or answer.is_empty():
                continue
            self._answers[question_id] = answer
            applied += 1

        return applied

    def apply_restored(self, question: Question, restored: RestoredAnswer) -> bool:
        """
        Overwrite an entry with the server's record if it is marked answered.

        Option ids the question does not offer are dropped.

        Returns:
            True if the entry was overwritten
        """
        if not restored.answered or question.question_id not in self._answers:
            return False

        answer = Answer(kind=question.kind)
        known = [i for i in restored.option_ids if question.has_option(i)]
        if question.kind is QuestionType.TEXT:
            answer.text = restored.text
        elif question.kind is QuestionType.MULTIPLE:
            answer.option_ids = known
        elif known:
            answer.option_id = known[0]

        if answer.is_empty():
            return False
        self._answers[question.question_id] = answer
        return True
