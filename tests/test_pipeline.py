"""Application wiring: context construction, status file, background jobs."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from pathlib import Path

import pytest

from linkfeed.config import Config, load_config
from linkfeed.jobs.ingest import TRIGGER_MANUAL
from linkfeed.jobs.pipeline import (
    build_app_context,
    ingest_settings_from_config,
    run_ingest,
    start_background_jobs,
    stop_background_jobs,
)


SOURCES_YAML = """\
sources:
  - name: Homepage Only
    url: https://home.example.com/
  - name: Also No Feed
    url: https://other.example.com/
"""


@pytest.fixture
def config(tmp_path: Path) -> Config:
    sources = tmp_path / "sources.yaml"
    sources.write_text(SOURCES_YAML, encoding="utf-8")
    return replace(
        load_config(),
        sources_path=sources,
        sqlite_path=tmp_path / "data" / "linkfeed.db",
        status_json_path=tmp_path / "data" / "status.json",
        metrics_enabled=False,
        fetch_retries=1,
        retention_days=30,
    )


def test_settings_follow_config(config: Config) -> None:
    settings = ingest_settings_from_config(config)
    assert settings.fetch_retries == 1
    assert settings.retention_days == 30
    assert settings.fetch_timeout_seconds == config.fetch_timeout_seconds


async def test_context_creates_schema(config: Config) -> None:
    ctx = await build_app_context(config)
    try:
        assert await ctx.storage.schema_exists()
        assert config.sqlite_path.exists()
    finally:
        await ctx.storage.close()


async def test_manual_run_writes_status(config: Config) -> None:
    ctx = await build_app_context(config)
    try:
        report = await run_ingest(ctx, TRIGGER_MANUAL)
    finally:
        await ctx.storage.close()

    assert not report.aborted
    assert report.sources_total == 2
    assert report.sources_eligible == 0

    status = json.loads(config.status_json_path.read_text(encoding="utf-8"))
    assert status["runs_total"] == 1
    assert status["last_run_trigger"] == TRIGGER_MANUAL
    assert status["state"] == "IDLE"
    assert status["last_report"]["sources_total"] == 2


async def test_scheduler_run_now_is_a_manual_ingest(config: Config) -> None:
    ctx = await build_app_context(config)
    try:
        report = await ctx.scheduler.run_now()
    finally:
        await ctx.storage.close()

    assert report.trigger == TRIGGER_MANUAL
    assert ctx.runtime_stats.last_run_trigger == TRIGGER_MANUAL
    assert not ctx.scheduler.scheduled
    status = json.loads(config.status_json_path.read_text(encoding="utf-8"))
    assert status["runs_total"] == 1


async def test_background_jobs_start_and_stop(config: Config) -> None:
    ctx = await build_app_context(config)
    await start_background_jobs(ctx)
    assert ctx.scheduler.scheduled

    loop = asyncio.get_running_loop()
    deadline = loop.time() + 2
    while ctx.runtime_stats.runs_total < 1 and loop.time() < deadline:
        await asyncio.sleep(0.01)

    await stop_background_jobs(ctx)

    assert ctx.runtime_stats.runs_total == 1
    assert not ctx.scheduler.scheduled
    assert ctx.tasks == []
    assert config.status_json_path.exists()
