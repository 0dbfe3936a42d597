from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Iterable

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from linkfeed.metrics.metrics import Metrics, RuntimeStats
from linkfeed.rss.errors import ERROR_UNKNOWN, FetchError
from linkfeed.rss.fetcher import FeedFetcher
from linkfeed.rss.normalize import UNTITLED_TITLE, normalize_entry
from linkfeed.storage.db import Storage
from linkfeed.storage.errors import StorageError
from linkfeed.storage.schema import MAX_CATEGORY_CHARS
from linkfeed.storage.types import FeedDocument, FeedEntry, FeedSource, NewItem
from linkfeed.utils import now_ts


logger = logging.getLogger(__name__)


TRIGGER_SCHEDULED = "scheduled"
TRIGGER_MANUAL = "manual"

SECONDS_PER_DAY = 86400

SourceProvider = Callable[[], Iterable[FeedSource]]


class RunState(str, Enum):
    IDLE = "IDLE"
    VALIDATING_SCHEMA = "VALIDATING_SCHEMA"
    FETCHING = "FETCHING"
    NORMALIZING = "NORMALIZING"
    PERSISTING = "PERSISTING"
    RETENTION_SWEEP = "RETENTION_SWEEP"


@dataclass(frozen=True)
class IngestSettings:
    fetch_timeout_seconds: float = 15.0
    verify_tls: bool = False
    items_per_source: int = 10
    retention_days: int = 365
    fetch_retries: int = 0
    fetch_retry_backoff_seconds: float = 1.0


@dataclass
class IngestReport:
    trigger: str
    started_at: float
    finished_at: float | None = None
    aborted: bool = False
    sources_total: int = 0
    sources_eligible: int = 0
    sources_fetched: int = 0
    sources_failed: int = 0
    items_inserted: int = 0
    items_existing: int = 0
    items_dropped: int = 0
    items_failed: int = 0
    items_deleted: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.retryable


def build_item(source: FeedSource, entry: FeedEntry) -> NewItem:
    category = (source.category or "").strip()[:MAX_CATEGORY_CHARS]
    return NewItem(
        category=category,
        title=entry.title or UNTITLED_TITLE,
        link=entry.link,
        description=entry.description,
        publish_date=entry.published_at,
        source_name=source.name,
        source_url=source.url or "",
        logo_url=source.logo_url or "",
    )


class IngestOrchestrator:
    def __init__(
        self,
        storage: Storage,
        fetcher: FeedFetcher,
        sources: SourceProvider,
        settings: IngestSettings | None = None,
        metrics: Metrics | None = None,
        runtime_stats: RuntimeStats | None = None,
        clock: Callable[[], int] = now_ts,
    ) -> None:
        self._storage = storage
        self._fetcher = fetcher
        self._sources = sources
        self._settings = settings or IngestSettings()
        self._metrics = metrics or Metrics()
        self._stats = runtime_stats or RuntimeStats()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = RunState.IDLE

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run(self, trigger: str = TRIGGER_MANUAL) -> IngestReport:
        if self._lock.locked():
            logger.info("ingest run requested (%s) while another run is active; waiting", trigger)

        async with self._lock:
            self._stats.running = True
            started = time.perf_counter()
            try:
                report = await self._run_locked(trigger)
            finally:
                self._state = RunState.IDLE
                self._stats.running = False
                self._metrics.ingest_run_seconds.observe(time.perf_counter() - started)

        report.finished_at = time.time()
        self._metrics.ingest_runs_total.labels(trigger=trigger).inc()
        if report.aborted:
            self._metrics.ingest_runs_aborted_total.inc()

        self._stats.runs_total += 1
        self._stats.last_run_ts = report.finished_at
        self._stats.last_run_trigger = trigger
        self._stats.last_run_aborted = report.aborted
        self._stats.last_report = report.to_dict()

        logger.info(
            "ingest run finished trigger=%s aborted=%s sources=%s/%s failed=%s inserted=%s existing=%s dropped=%s item_errors=%s deleted=%s",
            trigger,
            report.aborted,
            report.sources_fetched,
            report.sources_eligible,
            report.sources_failed,
            report.items_inserted,
            report.items_existing,
            report.items_dropped,
            report.items_failed,
            report.items_deleted,
        )
        return report

    async def sweep(self) -> int:
        async with self._lock:
            report = IngestReport(trigger="sweep", started_at=time.time())
            self._state = RunState.RETENTION_SWEEP
            try:
                await self._sweep(report)
            finally:
                self._state = RunState.IDLE
            return report.items_deleted

    async def _run_locked(self, trigger: str) -> IngestReport:
        report = IngestReport(trigger=trigger, started_at=time.time())
        logger.info("ingest run started trigger=%s", trigger)

        self._state = RunState.VALIDATING_SCHEMA
        if not await self._ensure_schema():
            logger.error("items table unavailable after repair attempt; run aborted")
            report.aborted = True
            return report

        try:
            sources = list(self._sources())
        except Exception:
            logger.exception("failed to load feed sources; run aborted")
            report.aborted = True
            return report

        eligible = [s for s in sources if (s.feed_url or "").strip()]
        report.sources_total = len(sources)
        report.sources_eligible = len(eligible)
        logger.info("feed sources: %s configured, %s with a feed url", len(sources), len(eligible))

        for source in eligible:
            await self._ingest_source(source, report)

        self._state = RunState.RETENTION_SWEEP
        await self._sweep(report)
        return report

    async def _ensure_schema(self) -> bool:
        try:
            if await self._storage.schema_exists():
                return True
            logger.warning("items table missing; recreating")
            await self._storage.ensure_schema()
            return await self._storage.schema_exists()
        except StorageError as e:
            logger.error("schema check failed: %s", e)
            return False

    async def _fetch(self, source: FeedSource) -> FeedDocument:
        s = self._settings
        backoff = max(0.0, float(s.fetch_retry_backoff_seconds))
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(0, int(s.fetch_retries)) + 1),
            wait=wait_exponential_jitter(initial=backoff, max=backoff * 10, jitter=backoff),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )
        with self._metrics.fetch_latency_seconds.time():
            return await retrying(
                self._fetcher.fetch,
                source.feed_url,
                timeout_seconds=s.fetch_timeout_seconds,
                verify_tls=s.verify_tls,
            )

    async def _ingest_source(self, source: FeedSource, report: IngestReport) -> None:
        self._state = RunState.FETCHING
        try:
            doc = await self._fetch(source)
        except FetchError as e:
            report.sources_failed += 1
            self._metrics.source_fetch_fail_total.labels(error_type=e.error_type).inc()
            logger.warning("fetch failed source=%s url=%s error=%s", source.name, source.feed_url, e)
            return
        except Exception:
            report.sources_failed += 1
            self._metrics.source_fetch_fail_total.labels(error_type=ERROR_UNKNOWN).inc()
            logger.exception("fetch crashed source=%s url=%s", source.name, source.feed_url)
            return

        report.sources_fetched += 1
        self._metrics.sources_fetched_total.inc()
        entries = doc.items(0, self._settings.items_per_source)
        logger.debug("source=%s: %s entries in feed, processing %s", source.name, doc.item_count, len(entries))

        for raw in entries:
            self._state = RunState.NORMALIZING
            entry = normalize_entry(raw)
            if entry is None:
                report.items_dropped += 1
                self._metrics.items_dropped_total.inc()
                logger.info("entry without title and link dropped source=%s", source.name)
                continue

            self._state = RunState.PERSISTING
            try:
                result = await self._storage.insert_item(build_item(source, entry))
            except StorageError as e:
                report.items_failed += 1
                self._metrics.items_failed_total.inc()
                logger.error("persist failed source=%s link=%s error=%s", source.name, entry.link, e)
                continue

            if result.created:
                report.items_inserted += 1
                self._metrics.items_inserted_total.inc()
                logger.debug("stored item id=%s source=%s link=%s", result.item_id, source.name, entry.link)
            else:
                report.items_existing += 1
                self._metrics.items_existing_total.inc()
                logger.info("already stored source=%s link=%s", source.name, entry.link)

    async def _sweep(self, report: IngestReport) -> None:
        cutoff = self._clock() - int(self._settings.retention_days) * SECONDS_PER_DAY
        try:
            deleted = await self._storage.delete_older_than(cutoff)
        except StorageError as e:
            logger.error("retention sweep failed: %s", e)
            return
        report.items_deleted = deleted
        self._metrics.items_deleted_total.inc(deleted)
        logger.info("retention sweep removed %s items published before %s", deleted, cutoff)
