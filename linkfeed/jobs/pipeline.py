from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from linkfeed.config import Config
from linkfeed.jobs.ingest import IngestOrchestrator, IngestReport, IngestSettings
from linkfeed.jobs.scheduler import IngestScheduler
from linkfeed.metrics.metrics import Metrics, RuntimeStats, write_status_json
from linkfeed.query.pagination import QueryService
from linkfeed.rss.fetcher import FeedFetcher
from linkfeed.sources.loader import YamlSourceProvider
from linkfeed.storage.db import Storage


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    config: Config
    storage: Storage
    fetcher: FeedFetcher
    orchestrator: IngestOrchestrator
    scheduler: IngestScheduler
    query: QueryService
    metrics: Metrics
    runtime_stats: RuntimeStats

    tasks: list[asyncio.Task] = field(default_factory=list)


def ingest_settings_from_config(config: Config) -> IngestSettings:
    return IngestSettings(
        fetch_timeout_seconds=config.fetch_timeout_seconds,
        verify_tls=config.fetch_verify_tls,
        items_per_source=config.items_per_source,
        retention_days=config.retention_days,
        fetch_retries=config.fetch_retries,
        fetch_retry_backoff_seconds=config.fetch_retry_backoff_seconds,
    )


async def build_app_context(config: Config) -> AppContext:
    storage = Storage(config.sqlite_path)
    # schema migration happens once here, before any run can start
    await storage.connect(ensure_schema=True)

    metrics = Metrics()
    if config.metrics_enabled:
        metrics.start_server(config.metrics_bind, config.metrics_port)

    runtime_stats = RuntimeStats()
    fetcher = FeedFetcher(user_agent=config.user_agent)
    orchestrator = IngestOrchestrator(
        storage=storage,
        fetcher=fetcher,
        sources=YamlSourceProvider(config.sources_path),
        settings=ingest_settings_from_config(config),
        metrics=metrics,
        runtime_stats=runtime_stats,
    )

    async def run(trigger: str) -> IngestReport:
        return await run_ingest(ctx, trigger)

    ctx = AppContext(
        config=config,
        storage=storage,
        fetcher=fetcher,
        orchestrator=orchestrator,
        scheduler=IngestScheduler(run, config.ingest_interval_seconds),
        query=QueryService(storage),
        metrics=metrics,
        runtime_stats=runtime_stats,
    )
    return ctx


async def run_ingest(ctx: AppContext, trigger: str) -> IngestReport:
    report = await ctx.orchestrator.run(trigger)
    try:
        write_status(ctx)
    except OSError:
        logger.exception("status write failed")
    return report


def write_status(ctx: AppContext) -> None:
    stats = ctx.runtime_stats
    data = {
        "running": stats.running,
        "state": ctx.orchestrator.state.value,
        "scheduled": ctx.scheduler.scheduled,
        "interval_seconds": ctx.config.ingest_interval_seconds,
        "runs_total": stats.runs_total,
        "last_run_ts": stats.last_run_ts,
        "last_run_trigger": stats.last_run_trigger,
        "last_run_aborted": stats.last_run_aborted,
        "last_report": stats.last_report,
    }
    write_status_json(ctx.config.status_json_path, data)


async def start_background_jobs(ctx: AppContext) -> None:
    async def status_job() -> None:
        while True:
            try:
                write_status(ctx)
            except Exception:
                logger.exception("status job failed")
            await asyncio.sleep(ctx.config.status_interval_seconds)

    ctx.scheduler.schedule_recurring(ctx.config.ingest_interval_seconds)
    ctx.tasks = [asyncio.create_task(status_job(), name="status_job")]


async def stop_background_jobs(ctx: AppContext) -> None:
    await ctx.scheduler.cancel_schedule()
    for t in ctx.tasks:
        t.cancel()
    await asyncio.gather(*ctx.tasks, return_exceptions=True)
    ctx.tasks = []

    await ctx.storage.close()
