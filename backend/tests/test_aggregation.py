import random
from datetime import datetime

from bootcamp_selection.pipeline.aggregation import AnswerRecord, aggregate_answers


def _record(student, question, correct, minute=0):
	return AnswerRecord(
		student_id=student,
		question_id=question,
		answer_text="x",
		is_correct=correct,
		answered_at=datetime(2025, 1, 1, 10, minute),
	)


QUESTION_TO_QUIZ = {1: "q1", 2: "q1", 3: "q1", 4: "q2"}


def test_counts_correct_and_answered_per_student_and_quiz() -> None:
	records = [
		_record("s1", 1, True),
		_record("s1", 2, False),
		_record("s1", 3, True),
		_record("s1", 4, True),
		_record("s2", 1, False),
	]
	tallies = aggregate_answers(records, QUESTION_TO_QUIZ)

	assert set(tallies) == {("s1", "q1"), ("s1", "q2"), ("s2", "q1")}
	assert tallies[("s1", "q1")].correct_count == 2
	assert tallies[("s1", "q1")].answered_count == 3
	assert tallies[("s1", "q2")].correct_count == 1
	assert tallies[("s2", "q1")].correct_count == 0
	assert tallies[("s2", "q1")].answered_count == 1


def test_result_does_not_depend_on_record_order() -> None:
	records = [_record(f"s{i % 4}", (i % 4) + 1, i % 3 == 0, minute=i) for i in range(24)]
	expected = aggregate_answers(records, QUESTION_TO_QUIZ)
	rng = random.Random(7)
	for _ in range(10):
		shuffled = records[:]
		rng.shuffle(shuffled)
		assert aggregate_answers(shuffled, QUESTION_TO_QUIZ) == expected


def test_student_without_records_has_no_key() -> None:
	tallies = aggregate_answers([_record("s1", 1, True)], QUESTION_TO_QUIZ)
	assert ("s2", "q1") not in tallies
	assert aggregate_answers([], QUESTION_TO_QUIZ) == {}


def test_orphan_records_are_skipped() -> None:
	tallies = aggregate_answers([_record("s1", 1, True), _record("s1", 99, True)], QUESTION_TO_QUIZ)
	assert tallies[("s1", "q1")].answered_count == 1
	assert len(tallies) == 1


def test_last_answered_at_is_latest_timestamp() -> None:
	records = [_record("s1", 1, True, minute=5), _record("s1", 2, True, minute=30), _record("s1", 3, False, minute=12)]
	tally = aggregate_answers(records, QUESTION_TO_QUIZ)[("s1", "q1")]
	assert tally.last_answered_at == datetime(2025, 1, 1, 10, 30)


def test_missing_timestamps_are_tolerated() -> None:
	records = [
		AnswerRecord(student_id="s1", question_id=1, answer_text="a", is_correct=True),
		_record("s1", 2, True, minute=3),
	]
	tally = aggregate_answers(records, QUESTION_TO_QUIZ)[("s1", "q1")]
	assert tally.last_answered_at == datetime(2025, 1, 1, 10, 3)
