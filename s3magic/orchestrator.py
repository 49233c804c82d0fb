from __future__ import annotations
"""Drives listing and concurrent batch deletion for one bucket."""
from concurrent.futures import Future, ThreadPoolExecutor
import logging
import queue
import threading
from typing import Callable

from .errors import DeleteRequestError
from .models import MAX_BATCH_SIZE, DeleteOutcome, ObjectPage, RunSummary
from .services import BatchDeleter, ListingPager

DEFAULT_MAX_CONCURRENCY = 8
FIRST_PASS = 1
SECOND_PASS = 2

LOGGER = logging.getLogger(__name__)

_STOP = object()


def partition(keys: list[str], size: int = MAX_BATCH_SIZE) -> list[list[str]]:
    """Split keys into request-sized batches; no keys yields one empty batch."""

    if not keys:
        return [[]]
    return [keys[start:start + size] for start in range(0, len(keys), size)]


class DeleteOrchestrator:
    """Lists a bucket and deletes every page as it arrives.

    Each page is dispatched to the executor as soon as it is listed. Once the
    listing is exhausted every retained page is dispatched again, and that
    second pass is the one counted in the summary. With ``second_pass``
    disabled the first pass is counted instead.
    """

    def __init__(
        self,
        pager: ListingPager,
        deleter: BatchDeleter,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        second_pass: bool = True,
        executor_factory: Callable[[int], ThreadPoolExecutor] | None = None,
    ):
        self._pager = pager
        self._deleter = deleter
        self._max_concurrency = max(int(max_concurrency), 1)
        self._second_pass = second_pass
        self._executor_factory = executor_factory or (
            lambda workers: ThreadPoolExecutor(max_workers=workers, thread_name_prefix="s3magic-delete")
        )

    @property
    def authoritative_pass(self) -> int:
        return SECOND_PASS if self._second_pass else FIRST_PASS

    def run(self, bucket: str, *, prefix: str = "") -> RunSummary:
        """Empty ``bucket`` (or the keys under ``prefix``) and return the tally.

        Raises:
            ListingError: when a listing page fails; tasks already dispatched
                are awaited before the error propagates.
            BatchTooLargeError: when a task was handed an oversized batch.
        """
        summary = RunSummary(bucket=bucket)
        retained: list[ObjectPage] = []
        futures: list[Future] = []
        outcomes: queue.Queue = queue.Queue()
        aggregator = threading.Thread(
            target=self._aggregate,
            args=(outcomes, summary),
            name="s3magic-aggregate",
            daemon=True,
        )
        aggregator.start()

        LOGGER.debug("Starting deletion run for bucket '%s' (prefix=%r)", bucket, prefix)
        try:
            with self._executor_factory(self._max_concurrency) as executor:
                for page in self._pager.pages(bucket, prefix=prefix):
                    retained.append(page)
                    futures.extend(self._dispatch(executor, bucket, page, FIRST_PASS, outcomes))

                LOGGER.debug("Listing of bucket '%s' finished after %d page(s)", bucket, len(retained))
                if self._second_pass:
                    for page in retained:
                        futures.extend(self._dispatch(executor, bucket, page, SECOND_PASS, outcomes))
        finally:
            outcomes.put(_STOP)
            aggregator.join()

        for future in futures:
            future.result()

        summary.pages = len(retained)
        summary.listed = sum(len(page.keys) for page in retained)
        LOGGER.debug(
            "Deletion run for bucket '%s' finished: %d succeeded, %d failed",
            bucket,
            summary.succeeded,
            summary.failed,
        )
        return summary

    def _dispatch(
        self,
        executor: ThreadPoolExecutor,
        bucket: str,
        page: ObjectPage,
        pass_number: int,
        outcomes: queue.Queue,
    ) -> list[Future]:
        return [
            executor.submit(self._delete, bucket, keys, pass_number, outcomes)
            for keys in partition(page.keys)
        ]

    def _delete(self, bucket: str, keys: list[str], pass_number: int, outcomes: queue.Queue) -> DeleteOutcome:
        try:
            outcome = self._deleter.delete_batch(bucket, keys)
        except DeleteRequestError as exc:
            LOGGER.error("%s", exc)
            outcome = exc.outcome
        outcomes.put((pass_number, outcome))
        return outcome

    def _aggregate(self, outcomes: queue.Queue, summary: RunSummary) -> None:
        while True:
            item = outcomes.get()
            if item is _STOP:
                return
            pass_number, outcome = item
            if pass_number == self.authoritative_pass:
                summary.merge(outcome)
            else:
                summary.merge_first_pass(outcome)
