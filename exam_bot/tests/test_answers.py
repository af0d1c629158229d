"""Tests for answers and the answer sheet snapshot codec."""
import json

import pytest

from attempt.answers import Answer, AnswerSheet
from attempt.exceptions import InvalidAnswerError
from portal_api.models import QuestionType, RestoredAnswer


# ============================================================================
# ANSWER
# ============================================================================


class TestAnswer:
    """Tests of a single answer."""

    def test_new_answers_are_empty(self):
        """A fresh answer of every kind is empty."""
        for kind in QuestionType:
            assert Answer(kind=kind).is_empty()

    def test_whitespace_text_is_empty(self):
        """Text made of whitespace does not count as an answer."""
        answer = Answer(kind=QuestionType.TEXT)
        answer.write("   \n")

        assert answer.is_empty()

    def test_select_replaces_previous(self):
        answer = Answer(kind=QuestionType.SINGLE)
        answer.select(10)
        answer.select(11)

        assert answer.option_id == 11

    def test_toggle_adds_and_removes(self):
        """Toggling an option twice removes it again."""
        answer = Answer(kind=QuestionType.MULTIPLE)
        answer.toggle(20)
        answer.toggle(21)
        answer.toggle(20)

        assert answer.option_ids == [21]

    def test_wrong_kind_operation_rejected(self):
        """select() on a multi-select answer raises InvalidAnswerError."""
        answer = Answer(kind=QuestionType.MULTIPLE)

        with pytest.raises(InvalidAnswerError):
            answer.select(20)

    def test_clear(self):
        answer = Answer(kind=QuestionType.MULTIPLE)
        answer.toggle(20)
        answer.clear()

        assert answer.is_empty()

    def test_payload_single(self):
        answer = Answer(kind=QuestionType.SINGLE)
        answer.select(10)

        assert answer.to_payload(1) == {"question_id": 1, "option_id": 10, "text": None}

    def test_payload_multiple(self):
        """Multi-select payload carries the list of option ids."""
        answer = Answer(kind=QuestionType.MULTIPLE)
        answer.toggle(20)
        answer.toggle(22)

        assert answer.to_payload(2) == {"question_id": 2, "option_id": [20, 22], "text": None}

    def test_payload_text(self):
        answer = Answer(kind=QuestionType.TEXT)
        answer.write("Paris")

        assert answer.to_payload(3) == {"question_id": 3, "option_id": None, "text": "Paris"}

    def test_from_dict_malformed(self):
        """Missing kind raises ValueError."""
        with pytest.raises(ValueError):
            Answer.from_dict({"option_id": 1})

    def test_from_dict_non_string_text(self):
        with pytest.raises(ValueError):
            Answer.from_dict({"kind": "text", "text": 5})


# ============================================================================
# ANSWER SHEET
# ============================================================================


class TestAnswerSheet:
    """Tests of the answer sheet."""

    def test_one_entry_per_question(self, questions):
        sheet = AnswerSheet(questions)

        assert len(sheet) == 3
        assert list(sheet) == [1, 2, 3]
        assert sheet[2].kind is QuestionType.MULTIPLE
        assert 99 not in sheet

    def test_attempted_counts(self, questions):
        sheet = AnswerSheet(questions)
        sheet[1].select(10)
        sheet[3].write("Paris")

        assert sheet.attempted() == 2
        assert sheet.unattempted() == 1

    def test_replace_unknown_question(self, questions):
        """Replacing an answer of an unknown question raises KeyError."""
        sheet = AnswerSheet(questions)

        with pytest.raises(KeyError):
            sheet.replace(99, Answer(kind=QuestionType.SINGLE))

    def test_replace_kind_mismatch(self, questions):
        sheet = AnswerSheet(questions)

        with pytest.raises(InvalidAnswerError):
            sheet.replace(1, Answer(kind=QuestionType.TEXT))


class TestSnapshot:
    """Tests of dump() and merge_snapshot()."""

    def test_snapshot_restores_every_kind(self, questions):
        """A dumped sheet merged into a fresh one gives the same answers."""
        sheet = AnswerSheet(questions)
        sheet[1].select(11)
        sheet[2].toggle(20)
        sheet[2].toggle(21)
        sheet[3].write("Paris")

        restored = AnswerSheet(questions)
        applied = restored.merge_snapshot(sheet.dump())

        assert applied == 3
        assert restored.to_dict() == sheet.to_dict()

    def test_dump_is_json_keyed_by_question(self, questions):
        sheet = AnswerSheet(questions)
        sheet[3].write("Paris")

        data = json.loads(sheet.dump())

        assert set(data) == {"1", "2", "3"}
        assert data["3"]["text"] == "Paris"
        assert data["3"]["kind"] == "text"

    def test_empty_entries_do_not_erase(self, questions):
        """Unanswered snapshot entries leave existing answers alone."""
        sheet = AnswerSheet(questions)
        sheet[1].select(10)

        sheet.merge_snapshot(AnswerSheet(questions).dump())

        assert sheet[1].option_id == 10

    def test_unknown_and_mismatched_entries_ignored(self, questions):
        sheet = AnswerSheet(questions)
        raw = json.dumps({
            "99": {"kind": "radio", "option_id": 10},
            "1": {"kind": "text", "text": "not a radio answer"},
            "x": {"kind": "radio", "option_id": 10},
        })

        assert sheet.merge_snapshot(raw) == 0
        assert sheet.attempted() == 0

    def test_invalid_json(self, questions):
        sheet = AnswerSheet(questions)

        with pytest.raises(ValueError):
            sheet.merge_snapshot("{not json")

    def test_non_object_snapshot(self, questions):
        sheet = AnswerSheet(questions)

        with pytest.raises(ValueError):
            sheet.merge_snapshot("[1, 2, 3]")


class TestApplyRestored:
    """Tests of applying the server's restoration records."""

    def test_answered_single(self, questions, single_question, restored_single):
        sheet = AnswerSheet(questions)

        assert sheet.apply_restored(single_question, restored_single) is True
        assert sheet[1].option_id == 11

    def test_not_answered_ignored(self, questions, single_question):
        """Records whose status is not 'answered' are skipped."""
        sheet = AnswerSheet(questions)
        record = RestoredAnswer(question_id=1, status="unanswered", option_ids=[11])

        assert sheet.apply_restored(single_question, record) is False
        assert sheet[1].is_empty()

    def test_unknown_options_dropped(self, questions, multiple_question):
        sheet = AnswerSheet(questions)
        record = RestoredAnswer(question_id=2, status="answered", option_ids=[20, 99, 22])

        sheet.apply_restored(multiple_question, record)

        assert sheet[2].option_ids == [20, 22]

    def test_text(self, questions, text_question):
        sheet = AnswerSheet(questions)
        record = RestoredAnswer(question_id=3, status="answered", text="Paris")

        sheet.apply_restored(text_question, record)

        assert sheet[3].text == "Paris"

    def test_answered_but_empty(self, questions, single_question):
        """An 'answered' record with no usable option does not count."""
        sheet = AnswerSheet(questions)
        record = RestoredAnswer(question_id=1, status="answered", option_ids=[99])

        assert sheet.apply_restored(single_question, record) is False
        assert sheet[1].is_empty()
