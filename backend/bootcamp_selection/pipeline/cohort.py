from __future__ import annotations
import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from .scoring import ScoredEntity


@dataclass(frozen=True)
class CohortPolicy:
	"""How many eligible entities advance: clamp(ceil(proportion * eligible), minimum, maximum)."""

	proportion: float = 1.0
	minimum: int = 0
	maximum: Optional[int] = None

	def __post_init__(self) -> None:
		if not (0 < self.proportion <= 1):
			raise ValueError(f"proportion must be in (0, 1], got {self.proportion}")
		if self.minimum < 0:
			raise ValueError("minimum must be >= 0")
		if self.maximum is not None and self.maximum < self.minimum:
			raise ValueError("maximum must be >= minimum")

	@classmethod
	def top(cls, n: int) -> "CohortPolicy":
		return cls(proportion=1.0, minimum=0, maximum=n)

	@classmethod
	def top_percent(cls, percent: float, *, minimum: int = 1, maximum: Optional[int] = None) -> "CohortPolicy":
		return cls(proportion=percent / 100.0, minimum=minimum, maximum=maximum)

	def size_for(self, eligible_count: int) -> int:
		# round() first so float noise such as 15.000000000000002 does not ceil upwards
		count = math.ceil(round(self.proportion * eligible_count, 9))
		count = max(count, self.minimum)
		if self.maximum is not None:
			count = min(count, self.maximum)
		return min(count, eligible_count)


def is_eligible(entity: ScoredEntity) -> bool:
	score = entity.percentage
	if score is None:
		return False
	if isinstance(score, float) and math.isnan(score):
		return False
	return score > 0


def _rank_key(entity: ScoredEntity) -> Tuple[float, int, datetime]:
	# Higher score first; among equals, entities with an earlier tie_break first,
	# those without one after them. sorted() keeps input order for the rest.
	if entity.tie_break is None:
		return (-float(entity.percentage), 1, datetime.min)
	return (-float(entity.percentage), 0, entity.tie_break)


def rank(entities: Sequence[ScoredEntity]) -> List[ScoredEntity]:
	return sorted((e for e in entities if is_eligible(e)), key=_rank_key)


def select_cohort(entities: Sequence[ScoredEntity], policy: CohortPolicy) -> List[ScoredEntity]:
	ranked = rank(entities)
	return ranked[: policy.size_for(len(ranked))]
