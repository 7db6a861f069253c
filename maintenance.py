"""
maintenance.py - Entry points for the health and duplicate features.

Wires the prober, health store, duplicate analyzer and merger around one
repository. Blocking work (repository calls, full scans, merges) is moved off
the event loop with ``run_in_executor``; scans and merges additionally share
a single named lock so two of them never touch the corpus at the same time.
"""

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from config import Config, HealthCheckSettings
from duplicate_analyzer import DuplicateAnalyzer
from health_store import HealthStore
from link_health import LinkHealthChecker
from link_merger import LinkMerger
from models import DuplicateCheckResult, DuplicateGroup, HealthRecord, MergeResult, NormalizedURL, SweepSummary
from url_normalizer import URLNormalizer

logger = logging.getLogger(__name__)

DUPLICATE_SCAN_LOCK = "duplicate-scan"


def _require_id(value, name: str = "bookmark id") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"A positive {name} is required, got {value!r}")
    return value


class MaintenanceService:
    def __init__(
        self,
        repository,
        *,
        settings: Optional[HealthCheckSettings] = None,
        normalizer: Optional[URLNormalizer] = None,
        store: Optional[HealthStore] = None,
        checker: Optional[LinkHealthChecker] = None,
    ):
        self.repository = repository
        self.settings = settings or HealthCheckSettings()
        self.store = store or HealthStore()
        self.normalizer = normalizer or URLNormalizer(
            max_redirects=self.settings.max_redirects,
            timeout=self.settings.request_timeout,
        )
        self.checker = checker or LinkHealthChecker(repository, self.store, self.settings)
        self.analyzer = DuplicateAnalyzer(repository, self.normalizer)
        self.merger = LinkMerger(repository)
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    @classmethod
    def from_config(cls, config: Config, repository) -> "MaintenanceService":
        settings = config.health_settings()
        normalizer = URLNormalizer(
            expand_short_urls=config.ENABLE_SHORT_URL_EXPANSION,
            max_redirects=settings.max_redirects,
            timeout=settings.request_timeout,
        )
        return cls(repository, settings=settings, normalizer=normalizer)

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _guarded(self, func, *args):
        """Runs ``func`` while holding the duplicate-scan lock (waits if busy)."""
        lock = self._locks[DUPLICATE_SCAN_LOCK]
        if lock.locked():
            logger.info("Waiting for the running duplicate scan/merge to finish")
        with lock:
            return func(*args)

    # Health

    def get_health(self, bookmark_id: int) -> Optional[HealthRecord]:
        return self.store.get(_require_id(bookmark_id))

    def get_all_health(self) -> Dict[int, HealthRecord]:
        return self.store.get_all()

    def get_broken_health(self) -> List[HealthRecord]:
        return self.store.broken()

    async def get_health_stats(self) -> Dict[str, int]:
        return await self._run_blocking(self.checker.stats)

    async def check_bookmark_now(self, bookmark_id: int) -> HealthRecord:
        return await self.checker.check_now(_require_id(bookmark_id))

    def start_health_sweeps(self) -> None:
        self.checker.start()

    async def stop_health_sweeps(self) -> None:
        await self.checker.stop()

    @property
    def sweep_in_progress(self) -> bool:
        return self.checker.sweep_in_progress

    def trigger_health_sweep(self) -> asyncio.Task:
        return self.checker.run_all()

    async def run_health_sweep(self) -> SweepSummary:
        return await self.checker.run_sweep()

    # Duplicates

    async def analyze_url(self, url: str) -> NormalizedURL:
        if not url or not url.strip():
            raise ValueError("A URL is required")
        return await self._run_blocking(self.normalizer.normalize, url)

    async def check_for_duplicates(self, url: str, title: str = "") -> DuplicateCheckResult:
        if not url or not url.strip():
            raise ValueError("A URL is required")
        return await self._run_blocking(
            self._guarded, self.analyzer.check_for_duplicates, url, title or ""
        )

    async def find_all_duplicates(self) -> List[DuplicateGroup]:
        return await self._run_blocking(self._guarded, self.analyzer.find_all_duplicates)

    async def merge_duplicates(
        self,
        primary_id: int,
        duplicate_ids: Iterable[int],
        merge_tags: bool = True,
        merge_metadata: bool = True,
    ) -> MergeResult:
        primary_id = _require_id(primary_id, "primary id")
        duplicate_ids = [_require_id(value, "duplicate id") for value in duplicate_ids]
        if not duplicate_ids:
            raise ValueError("At least one duplicate id is required")

        return await self._run_blocking(
            self._guarded,
            self.merger.merge,
            primary_id,
            duplicate_ids,
            merge_tags,
            merge_metadata,
        )

    def close(self) -> None:
        self.checker.close()
