"""
Batch scheduling and progress streaming for Org Pulse.

Companies are analyzed in sequential windows; the companies inside a window
run concurrently and the scheduler waits for all of them to settle before
starting the next window. Every settled company produces exactly one result or
error event, and the run always ends with a single done event.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Sequence

import httpx

from org_pulse.config import get_batch_size
from org_pulse.core import analyze_company
from org_pulse.http_client import create_async_http_client
from org_pulse.models import CompanyInput, CompanyResult, EventType, ProgressEvent
from org_pulse.rate_limit import RateLimitedClient
from org_pulse.vcs.github import GitHubProvider

logger = logging.getLogger(__name__)


class ProgressStream:
    """One-way, best-effort channel of progress events to a single consumer.

    Producers never block on delivery. Once the consumer goes away (close())
    further sends are dropped silently; once the producer is done (finish())
    the consumer's iteration ends after the queued events.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: ProgressEvent) -> bool:
        """Queue an event; returns False if it was dropped."""
        if self._closed or self._finished:
            return False
        self._queue.put_nowait(event)
        return True

    def finish(self) -> None:
        """Signal that no more events will be sent."""
        if self._finished:
            return
        self._finished = True
        self._queue.put_nowait(None)

    def close(self) -> None:
        """Mark the consumer as gone and discard undelivered events."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Yield events in send order until the producer finishes."""
        while not self._closed:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def sse(self) -> AsyncIterator[str]:
        """Yield server-sent event frames; closes the stream when iteration stops."""
        try:
            async for event in self.events():
                yield f"data: {json.dumps(event.to_dict())}\n\n"
        finally:
            self.close()


def _error_message(exc: BaseException) -> str:
    return str(exc) or "Unknown error"


class BatchScheduler:
    """Run the company analysis over a batch with bounded concurrency."""

    def __init__(
        self,
        provider: GitHubProvider,
        stream: ProgressStream | None = None,
        batch_size: int | None = None,
    ):
        self.provider = provider
        self.stream = stream
        self.batch_size = batch_size if batch_size is not None else get_batch_size()
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        self.completed = 0
        self.total = 0

    def _send(self, event: ProgressEvent) -> None:
        if self.stream is not None:
            self.stream.send(event)

    def _progress(self, company: CompanyInput, message: str) -> None:
        self._send(
            ProgressEvent(
                type=EventType.PROGRESS,
                company=company.company_name,
                message=message,
                completed=self.completed,
                total=self.total,
            )
        )

    async def _settle(
        self, index: int, company: CompanyInput, since: str
    ) -> tuple[int, CompanyInput, CompanyResult | Exception]:
        self._progress(company, f"Analyzing {company.company_name}...")
        try:
            result = await analyze_company(
                self.provider,
                company,
                since,
                lambda message: self._progress(
                    company, f"[{company.company_name}] {message}"
                ),
            )
        except Exception as e:
            logger.warning("Analysis failed for %s: %s", company.company_name, e)
            return index, company, e
        return index, company, result

    def _record(
        self, company: CompanyInput, outcome: CompanyResult | Exception
    ) -> CompanyResult:
        self.completed += 1

        if isinstance(outcome, CompanyResult):
            result = outcome
        else:
            result = CompanyResult.empty(company, error=_error_message(outcome))

        if result.error:
            event_type = EventType.ERROR
            message = f"{result.company_name}: {result.error}"
        else:
            event_type = EventType.RESULT
            message = (
                f"{result.company_name}: {result.most_active_repo} "
                f"({result.commit_count} commits)"
            )

        self._send(
            ProgressEvent(
                type=event_type,
                company=result.company_name,
                message=message,
                result=result,
                completed=self.completed,
                total=self.total,
            )
        )
        return result

    async def run(
        self, companies: Sequence[CompanyInput], since: str
    ) -> list[CompanyResult]:
        """
        Analyze every company and stream events as they settle.

        Args:
            companies: Companies to analyze.
            since: ISO-8601 start of the trailing window.

        Returns:
            One CompanyResult per input, in input order.
        """
        self.total = len(companies)
        self.completed = 0
        results: list[CompanyResult | None] = [None] * self.total

        try:
            for start in range(0, self.total, self.batch_size):
                window = companies[start : start + self.batch_size]
                tasks = [
                    asyncio.create_task(self._settle(start + offset, company, since))
                    for offset, company in enumerate(window)
                ]
                # Events follow settlement order within the window
                for settled in asyncio.as_completed(tasks):
                    index, company, outcome = await settled
                    results[index] = self._record(company, outcome)

            self._send(
                ProgressEvent(
                    type=EventType.DONE,
                    message=f"Finished analyzing {self.total} companies",
                    completed=self.total,
                    total=self.total,
                )
            )
        finally:
            if self.stream is not None:
                self.stream.finish()

        return [result for result in results if result is not None]


async def analyze_companies(
    token: str,
    companies: Sequence[CompanyInput],
    since: str,
    stream: ProgressStream | None = None,
    batch_size: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[CompanyResult]:
    """
    Run one batch invocation with its own GitHub client.

    Args:
        token: GitHub token used for every request in this batch.
        companies: Companies to analyze.
        since: ISO-8601 start of the trailing window.
        stream: Optional progress stream to feed.
        batch_size: Concurrency window (defaults to the configured value).
        transport: Optional HTTP transport override (used by tests).

    Returns:
        One CompanyResult per input, in input order.

    Raises:
        ValueError: If the batch cannot be set up (invalid batch size or
            configuration file). The stream still receives a done event.
    """
    try:
        client = RateLimitedClient(token, create_async_http_client(transport))
        async with client:
            scheduler = BatchScheduler(GitHubProvider(client), stream, batch_size)
            return await scheduler.run(companies, since)
    except Exception as e:
        if stream is not None:
            stream.send(
                ProgressEvent(
                    type=EventType.DONE,
                    message=f"Batch failed: {_error_message(e)}",
                    completed=0,
                    total=len(companies),
                )
            )
        raise
    finally:
        if stream is not None:
            stream.finish()
