from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from ..mailer import EmailMessage
from .batch import run_batch

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DispatchResult:
	index: int
	recipient: Optional[str]
	success: bool
	error: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		return {"index": self.index, "recipient": self.recipient, "success": self.success, "error": self.error}


@dataclass
class DispatchSummary:
	sent_count: int
	failed_count: int
	total_count: int
	results: List[DispatchResult] = field(default_factory=list)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"sent": self.sent_count,
			"failed": self.failed_count,
			"total": self.total_count,
			"results": [r.to_dict() for r in self.results],
		}


async def dispatch(
	cohort: Sequence[T],
	build_message: Callable[[T], EmailMessage],
	send: Callable[[EmailMessage], Awaitable[Any]],
	*,
	concurrency: int = 1,
) -> DispatchSummary:
	"""Send one message per cohort member, one attempt each.

	A failure to build or send a message is counted and the loop moves on.
	With concurrency=1 members are attempted strictly in cohort order.
	"""
	recipients: List[Optional[str]] = [None] * len(cohort)

	async def _deliver(pair: tuple) -> None:
		index, member = pair
		message = build_message(member)
		recipients[index] = message.to
		await send(message)

	outcomes = await run_batch(list(enumerate(cohort)), _deliver, concurrency=concurrency, label="dispatch")
	results = [
		DispatchResult(index=o.index, recipient=recipients[o.index], success=o.ok, error=o.error)
		for o in outcomes
	]
	sent = sum(1 for r in results if r.success)
	return DispatchSummary(sent_count=sent, failed_count=len(results) - sent, total_count=len(results), results=results)
