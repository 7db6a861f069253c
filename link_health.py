"""
link_health.py - Monitors the status of saved links

This module:
- Periodically sweeps every bookmark in batches
- Classifies each link as healthy, slow, redirect or broken
- Keeps the latest result per bookmark in the HealthStore
"""

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple
from urllib.parse import urljoin

import requests

from config import HealthCheckSettings
from database import load_corpus
from errors import MalformedURLError, RepositoryError
from health_store import HealthStore
from models import Bookmark, HealthRecord, HealthStatus, SweepSummary, utcnow
from url_normalizer import split_url

logger = logging.getLogger(__name__)

# Servers that refuse HEAD get a streamed GET instead
HEAD_UNSUPPORTED = {405, 501}


def classify_status(
    status_code: int, elapsed: float, slow_threshold: float
) -> Tuple[HealthStatus, Optional[str]]:
    """Maps a response code and latency (seconds) to a status and optional error text."""
    if 200 <= status_code < 300:
        if elapsed > slow_threshold:
            return HealthStatus.SLOW, None
        return HealthStatus.HEALTHY, None
    if 300 <= status_code < 400:
        return HealthStatus.REDIRECT, None
    if status_code >= 400:
        return HealthStatus.BROKEN, f"HTTP {status_code}"
    return HealthStatus.UNKNOWN, f"Unexpected status code: {status_code}"


class LinkHealthChecker:
    """
    Runs liveness probes against bookmarks.

    Sweeps walk the corpus in fixed-size batches; inside a batch the probes
    run on a thread pool, with an asyncio semaphore keeping at most
    ``settings.max_concurrent`` requests in flight.
    """

    def __init__(
        self,
        repository,
        store: HealthStore,
        settings: Optional[HealthCheckSettings] = None,
        *,
        session_factory: Callable[[], requests.Session] = requests.Session,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repository = repository
        self.store = store
        self.settings = settings or HealthCheckSettings()
        self._session_factory = session_factory
        self._clock = clock
        self._local = threading.local()
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_concurrent,
            thread_name_prefix="link-health",
        )
        self._limiter = asyncio.Semaphore(self.settings.max_concurrent)
        self._sweep_task: Optional[asyncio.Task] = None
        self._scheduler_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._scheduler_task is not None and not self._scheduler_task.done()

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.max_redirects = self.settings.max_redirects
            self._local.session = session
        return session

    def _request(self, url: str):
        session = self._session()
        headers = {"User-Agent": self.settings.user_agent}
        response = session.head(
            url,
            headers=headers,
            timeout=self.settings.request_timeout,
            allow_redirects=True,
        )
        if response.status_code in HEAD_UNSUPPORTED:
            response.close()
            response = session.get(
                url,
                headers=headers,
                timeout=self.settings.request_timeout,
                allow_redirects=True,
                stream=True,
            )
        return response

    def run_check(self, bookmark: Bookmark) -> HealthRecord:
        """
        Probes a single bookmark and returns its health record.

        Never raises for network problems: transport errors, timeouts, TLS
        failures, redirect loops and malformed URLs all come back as
        ``broken`` with an error message.
        """
        record = HealthRecord(bookmark_id=bookmark.id, url=bookmark.url)

        try:
            split_url(bookmark.url)
        except MalformedURLError as exc:
            record.status = HealthStatus.BROKEN
            record.error = f"Invalid URL: {exc.reason}"
            return record

        start = self._clock()
        try:
            response = self._request(bookmark.url)
        except requests.TooManyRedirects:
            record.status = HealthStatus.BROKEN
            record.error = f"Exceeded {self.settings.max_redirects} redirects"
            record.response_time_ms = int((self._clock() - start) * 1000)
            return record
        except requests.RequestException as exc:
            record.status = HealthStatus.BROKEN
            record.error = str(exc) or exc.__class__.__name__
            record.response_time_ms = int((self._clock() - start) * 1000)
            return record

        elapsed = self._clock() - start
        try:
            # a followed redirect chain is reported by its first hop
            first = response.history[0] if response.history else response
            record.response_time_ms = int(elapsed * 1000)
            record.status_code = first.status_code
            # requests applies the timeout per socket operation and hop
            if elapsed > self.settings.request_timeout:
                record.status = HealthStatus.BROKEN
                record.error = f"Timed out after {self.settings.request_timeout:g}s"
                return record
            record.status, record.error = classify_status(
                first.status_code, elapsed, self.settings.slow_threshold
            )
            if record.status == HealthStatus.REDIRECT:
                location = first.headers.get("Location")
                if location:
                    record.redirect_url = urljoin(bookmark.url, location)
        finally:
            response.close()

        return record

    def _record(self, record: HealthRecord) -> None:
        self.store.put(record)

        if record.status == HealthStatus.BROKEN:
            logger.warning("Broken link detected: %s (%s)", record.url, record.error)
        elif record.status == HealthStatus.SLOW:
            logger.warning("Slow link detected: %s (%dms)", record.url, record.response_time_ms)

    async def _check_with_limit(self, bookmark: Bookmark) -> HealthRecord:
        async with self._limiter:
            loop = asyncio.get_running_loop()
            record = await loop.run_in_executor(self._executor, self.run_check, bookmark)
        self._record(record)
        return record

    async def _check_batch(self, batch: List[Bookmark]) -> List[HealthRecord]:
        return await asyncio.gather(*(self._check_with_limit(bookmark) for bookmark in batch))

    async def run_sweep(self) -> SweepSummary:
        """
        Checks every bookmark once.

        Raises:
            RepositoryError: when the corpus cannot be listed; nothing is probed.
        """
        logger.info("Running bookmark health check...")
        loop = asyncio.get_running_loop()
        bookmarks = await loop.run_in_executor(None, load_corpus, self.repository)
        logger.info("Checking health of %d bookmarks", len(bookmarks))

        summary = SweepSummary()
        batch_size = self.settings.batch_size
        for offset in range(0, len(bookmarks), batch_size):
            if offset:
                # Small delay between batches to avoid bursting remote hosts
                await asyncio.sleep(self.settings.batch_pause)

            records = await self._check_batch(bookmarks[offset:offset + batch_size])
            for record in records:
                key = record.status.value
                summary.counts[key] = summary.counts.get(key, 0) + 1
            summary.checked += len(records)

        summary.finished_at = utcnow()
        logger.info("Health check completed. Checked %d bookmarks", summary.checked)
        return summary

    async def _sweep_safely(self) -> Optional[SweepSummary]:
        try:
            return await self.run_sweep()
        except RepositoryError:
            logger.exception("Failed to get bookmarks for health check")
            return None
        except Exception:
            logger.exception("Health sweep failed")
            return None

    def run_all(self) -> asyncio.Task:
        """Starts a background sweep, or returns the one already running."""
        if self.sweep_in_progress:
            return self._sweep_task
        self._sweep_task = asyncio.create_task(self._sweep_safely())
        return self._sweep_task

    async def check_now(self, bookmark_id: int) -> HealthRecord:
        """Checks one bookmark immediately, outside of any sweep."""
        loop = asyncio.get_running_loop()
        try:
            bookmark = await loop.run_in_executor(None, self.repository.get_by_id, bookmark_id)
        except RepositoryError as exc:
            logger.warning("Could not load bookmark %s for health check: %s", bookmark_id, exc)
            return HealthRecord(
                bookmark_id=bookmark_id,
                url="",
                status=HealthStatus.UNKNOWN,
                error=f"Repository unavailable: {exc}",
            )

        if bookmark is None:
            return HealthRecord(
                bookmark_id=bookmark_id,
                url="",
                status=HealthStatus.BROKEN,
                error="Bookmark not found",
            )

        record = await loop.run_in_executor(self._executor, self.run_check, bookmark)
        self._record(record)
        return record.copy()

    def stats(self):
        """Counts per status plus ``total`` and ``unchecked`` from the repository."""
        try:
            total = self.repository.count_bookmarks()
        except RepositoryError as exc:
            logger.warning("Could not count bookmarks for health stats: %s", exc)
            total = len(self.store)
        return self.store.stats(total)

    def start(self) -> None:
        """Sweeps now and then every ``settings.check_interval`` seconds."""
        if self.running:
            return
        logger.info("Starting bookmark health checker...")
        self._scheduler_task = asyncio.create_task(self._schedule_loop())

    async def _schedule_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.run_all()
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.settings.check_interval - elapsed))

    async def stop(self) -> None:
        """Cancels the schedule and any sweep in progress; stored records are kept."""
        tasks = [task for task in (self._scheduler_task, self._sweep_task) if task is not None]
        if not tasks:
            return

        logger.info("Stopping bookmark health checker...")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._scheduler_task = None
        self._sweep_task = None

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
