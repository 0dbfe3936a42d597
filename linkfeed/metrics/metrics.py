from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server


logger = logging.getLogger(__name__)


@dataclass
class RuntimeStats:
    running: bool = False
    last_run_ts: float | None = None
    last_run_trigger: str | None = None
    last_run_aborted: bool = False
    runs_total: int = 0
    last_report: dict[str, Any] = field(default_factory=dict)


class Metrics:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        r = self.registry

        self.ingest_runs_total = Counter("ingest_runs_total", "Ingestion runs", ["trigger"], registry=r)
        self.ingest_runs_aborted_total = Counter("ingest_runs_aborted_total", "Ingestion runs aborted", registry=r)
        self.ingest_run_seconds = Histogram(
            "ingest_run_seconds",
            "Ingestion run duration",
            buckets=(1, 5, 15, 30, 60, 120, 300, 600),
            registry=r,
        )

        self.sources_fetched_total = Counter("sources_fetched_total", "Feed sources fetched", registry=r)
        self.source_fetch_fail_total = Counter("source_fetch_fail_total", "Feed source fetch failures", ["error_type"], registry=r)
        self.fetch_latency_seconds = Histogram(
            "fetch_latency_seconds",
            "Feed fetch latency",
            buckets=(0.25, 0.5, 1, 2, 5, 10, 15, 30),
            registry=r,
        )

        self.items_inserted_total = Counter("items_inserted_total", "Items inserted", registry=r)
        self.items_existing_total = Counter("items_existing_total", "Items already stored", registry=r)
        self.items_dropped_total = Counter("items_dropped_total", "Entries dropped by normalization", registry=r)
        self.items_failed_total = Counter("items_failed_total", "Item persist failures", registry=r)
        self.items_deleted_total = Counter("items_deleted_total", "Items removed by retention", registry=r)

    def start_server(self, bind: str, port: int) -> None:
        start_http_server(port, addr=bind, registry=self.registry)
        logger.info("metrics server started at %s:%s", bind, port)


def write_status_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    tmp.replace(path)
