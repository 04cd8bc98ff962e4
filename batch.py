"""Bounded worker pool that drains candidate URLs through the single-page pipeline."""

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from typing import Awaitable, Callable

from config import BatchConfig
from models import (
    BatchProgress,
    BatchSummary,
    CandidateUrl,
    ExtractionResult,
    failed_result,
)

logger = logging.getLogger(__name__)

CANCELLED_REASON = "batch cancelled"

# (url, worker_id) -> result; must not raise for per-URL errors
ExtractFn = Callable[[str, int], Awaitable[ExtractionResult]]


@dataclass
class BatchOutcome:
    summary: BatchSummary
    results: list[ExtractionResult]

    @property
    def successes(self) -> list[ExtractionResult]:
        return [r for r in self.results if r.success]

    @property
    def failures(self) -> list[ExtractionResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> dict:
        return {
            "success": self.summary.successful_extractions > 0,
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.successes],
            "errors": [{"url": r.url, "error": r.error} for r in self.failures],
        }


class BatchRun:
    """State of one batch invocation: queue, live counters and results.

    Workers share this object and nothing else. Queue pops and result
    appends happen between awaits, so they never interleave.
    """

    def __init__(
        self,
        urls: list[str],
        extract: ExtractFn,
        workers: int,
        config: BatchConfig,
        cancel_event: asyncio.Event | None = None,
    ):
        self.extract = extract
        self.workers = workers
        self.config = config
        self.cancel_event = cancel_event or asyncio.Event()

        self.queue: asyncio.Queue[str] = asyncio.Queue()
        for url in urls:
            self.queue.put_nowait(url)

        self.results: list[ExtractionResult] = []
        self.peak_in_progress = 0
        self._progress = BatchProgress(total=len(urls))

    def progress(self) -> BatchProgress:
        """Returns a snapshot of the live counters."""
        return replace(self._progress)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    async def execute(self) -> BatchOutcome:
        total = self._progress.total
        logger.info(f"Starting batch of {total} URLs with {self.workers} workers")

        if total:
            await asyncio.gather(*(self._worker(i) for i in range(1, self.workers + 1)))

        if self.cancelled:
            self._drain_cancelled()

        summary = BatchSummary.from_results(total, self.results)
        logger.info(
            f"Batch complete: {summary.successful_extractions}/{total} succeeded "
            f"({summary.success_rate})"
        )
        return BatchOutcome(summary=summary, results=list(self.results))

    async def _worker(self, worker_id: int) -> None:
        while not self.cancelled:
            try:
                url = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            self._progress.in_progress += 1
            self.peak_in_progress = max(self.peak_in_progress, self._progress.in_progress)
            logger.debug(f"Worker {worker_id} processing {url}")
            try:
                result = await self.extract(url, worker_id)
            except Exception as e:
                logger.exception(f"Worker {worker_id} failed on {url}")
                result = failed_result(url, f"Extraction failed: {e}", worker_id)
            finally:
                self._progress.in_progress -= 1

            self._record(result)

            if not self.queue.empty() and not self.cancelled:
                delay = random.uniform(self.config.politeness_delay_min, self.config.politeness_delay_max)
                await asyncio.sleep(delay)

        logger.debug(f"Worker {worker_id} finished")

    def _record(self, result: ExtractionResult) -> None:
        self.results.append(result)
        if result.success:
            self._progress.completed += 1
        else:
            self._progress.failed += 1
        p = self._progress
        logger.info(f"Progress: {p.completed + p.failed}/{p.total} ({p.completed} ok, {p.failed} failed)")

    def _drain_cancelled(self) -> None:
        skipped = 0
        while True:
            try:
                url = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._record(failed_result(url, CANCELLED_REASON))
            skipped += 1
        if skipped:
            logger.warning(f"Batch cancelled, {skipped} URLs not started")


class BatchOrchestrator:
    """Runs batches; holds configuration only, never per-batch state."""

    def __init__(self, extract: ExtractFn, config: BatchConfig | None = None):
        self.extract = extract
        self.config = config or BatchConfig()

    def prepare(
        self,
        candidates: list[CandidateUrl] | list[str],
        max_concurrency: int | None = None,
        max_recipes: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchRun:
        """Builds the run context; call `execute()` on it to start.

        A missing or non-positive `max_recipes` or `max_concurrency` means
        the configured default.
        """
        if not max_recipes or max_recipes < 1:
            max_recipes = self.config.default_max_recipes
        if not max_concurrency or max_concurrency < 1:
            max_concurrency = self.config.max_workers

        urls = []
        for candidate in candidates:
            url = candidate.url if isinstance(candidate, CandidateUrl) else candidate
            if url not in urls:
                urls.append(url)
        urls = urls[:max_recipes]

        workers = max(1, min(max_concurrency, len(urls)))
        return BatchRun(urls, self.extract, workers, self.config, cancel_event)

    async def run_batch(
        self,
        candidates: list[CandidateUrl] | list[str],
        max_concurrency: int | None = None,
        max_recipes: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchOutcome:
        run = self.prepare(candidates, max_concurrency, max_recipes, cancel_event)
        return await run.execute()
