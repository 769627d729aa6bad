from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Hashable, Iterable, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerRecord:
	student_id: Hashable
	question_id: Hashable
	answer_text: str
	is_correct: bool
	answered_at: Optional[datetime] = None


@dataclass(frozen=True)
class QuizTally:
	student_id: Hashable
	quiz_id: Hashable
	correct_count: int
	answered_count: int
	last_answered_at: Optional[datetime] = None


TallyKey = Tuple[Hashable, Hashable]


def _later(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
	if a is None:
		return b
	if b is None:
		return a
	return a if a >= b else b


def aggregate_answers(
	records: Iterable[AnswerRecord],
	question_to_quiz: Mapping[Hashable, Hashable],
) -> Dict[TallyKey, QuizTally]:
	"""Fold answer records into one tally per (student_id, quiz_id).

	Every record counts as answered; only is_correct records count as correct.
	The fold is order-independent. Students without records for a quiz get no
	key at all, so a missing key means "not attempted" rather than zero.
	Records whose question has no quiz in ``question_to_quiz`` are skipped.
	"""
	correct: Dict[TallyKey, int] = {}
	answered: Dict[TallyKey, int] = {}
	last_at: Dict[TallyKey, Optional[datetime]] = {}
	orphans = 0
	for record in records:
		quiz_id = question_to_quiz.get(record.question_id)
		if quiz_id is None:
			orphans += 1
			continue
		key = (record.student_id, quiz_id)
		answered[key] = answered.get(key, 0) + 1
		correct[key] = correct.get(key, 0) + (1 if record.is_correct else 0)
		last_at[key] = _later(last_at.get(key), record.answered_at)
	if orphans:
		logger.warning("Skipped %d answer records with no known quiz", orphans)
	return {
		key: QuizTally(
			student_id=key[0],
			quiz_id=key[1],
			correct_count=correct[key],
			answered_count=count,
			last_answered_at=last_at[key],
		)
		for key, count in answered.items()
	}
