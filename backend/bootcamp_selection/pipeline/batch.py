from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Literal, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class SkipItem(Exception):
	"""Raised by a batch worker when an item cannot be processed at all (no usable id, missing row)."""


ItemStatus = Literal["ok", "skipped", "failed"]


@dataclass
class ItemResult(Generic[T, R]):
	index: int
	item: T
	status: ItemStatus
	value: Optional[R] = None
	error: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.status == "ok"


async def run_batch(
	items: Sequence[T],
	worker: Callable[[T], Awaitable[R]],
	*,
	concurrency: int = 1,
	label: str = "batch",
) -> List[ItemResult[T, R]]:
	"""Run worker over items with at most ``concurrency`` in flight.

	Each task captures its own outcome, so no exception crosses a task boundary
	and one failure never stops the others. Results come back in input order.
	"""
	if concurrency < 1:
		raise ValueError("concurrency must be >= 1")
	semaphore = asyncio.Semaphore(concurrency)

	async def _run(index: int, item: T) -> ItemResult[T, R]:
		async with semaphore:
			try:
				value = await worker(item)
			except SkipItem as e:
				logger.warning("%s item %d skipped: %s", label, index, e)
				return ItemResult(index=index, item=item, status="skipped", error=str(e))
			except Exception as e:
				logger.warning("%s item %d failed: %s", label, index, e)
				return ItemResult(index=index, item=item, status="failed", error=str(e) or e.__class__.__name__)
			return ItemResult(index=index, item=item, status="ok", value=value)

	if concurrency == 1:
		results = [await _run(i, item) for i, item in enumerate(items)]
	else:
		results = list(await asyncio.gather(*(_run(i, item) for i, item in enumerate(items))))
	ok = sum(1 for r in results if r.status == "ok")
	skipped = sum(1 for r in results if r.status == "skipped")
	logger.info("%s finished: %d ok, %d skipped, %d failed of %d", label, ok, skipped, len(results) - ok - skipped, len(results))
	return results


def count_status(results: Sequence[ItemResult[Any, Any]], status: ItemStatus) -> int:
	return sum(1 for r in results if r.status == status)
