from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Hashable, Optional

from .aggregation import QuizTally

_ONE_DECIMAL = Decimal("0.1")
_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class ScoredEntity:
	"""Anything the cohort selector can rank: a student's quiz score or a video evaluation.

	``percentage`` is None when the score is undefined; such entities are never
	selected. ``tie_break`` orders equal scores (earlier wins).
	"""

	identity: Hashable
	raw_score: float
	total_possible: float
	percentage: Optional[float]
	tie_break: Optional[datetime] = None
	payload: Any = None


def round_one_decimal(value: Any) -> float:
	# Decimal ROUND_HALF_UP rounds half away from zero: 12.25 -> 12.3, -12.25 -> -12.3
	return float(Decimal(str(value)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def percentage(correct_count: int, total_question_count: Optional[int]) -> float:
	if not total_question_count or total_question_count <= 0:
		return 0.0
	value = Decimal(max(correct_count, 0)) * _HUNDRED / Decimal(total_question_count)
	value = min(value.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP), _HUNDRED)
	return float(value)


def score_tally(tally: QuizTally, total_question_count: Optional[int], *, payload: Any = None) -> ScoredEntity:
	return ScoredEntity(
		identity=tally.student_id,
		raw_score=float(tally.correct_count),
		total_possible=float(total_question_count or 0),
		percentage=percentage(tally.correct_count, total_question_count),
		tie_break=tally.last_answered_at,
		payload=payload,
	)
