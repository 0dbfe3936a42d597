from __future__ import annotations

import fcntl
import gzip
import logging
import os
import shutil
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable


DEFAULT_MAX_BYTES = 5 * 1024 * 1024
PLACEHOLDER_NAME = "index.html"
LOG_FILE_MODE = 0o644


def _stderr_fallback(message: str) -> None:
    try:
        sys.stderr.write(f"linkfeed log sink: {message}\n")
    except Exception:
        pass


@dataclass(frozen=True)
class LogSinkConfig:
    enabled: bool
    directory: Path
    base_name: str = "linkfeed"
    max_bytes: int = DEFAULT_MAX_BYTES

    @property
    def log_path(self) -> Path:
        return self.directory / f"{self.base_name}.log"

    @property
    def lock_path(self) -> Path:
        return self.directory / f".{self.base_name}.lock"


class LogSink:
    """Append-only diagnostic log file.

    Off unless the config enables it. Each write takes an exclusive flock on a
    sidecar lock file, rotates the active file once it reaches ``max_bytes``
    (``<base>_<YYYYmmddHHMMSS>.log`` gzipped to ``.log.gz``) and appends one
    ``[timestamp] [component] message`` line. Nothing here ever raises to the
    caller; failures are reported through ``fallback``.
    """

    def __init__(
        self,
        config: LogSinkConfig,
        fallback: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._cfg = config
        self._fallback = fallback or _stderr_fallback
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._cfg.enabled

    @property
    def config(self) -> LogSinkConfig:
        return self._cfg

    def write(self, message: str, component: str = "linkfeed") -> None:
        if not self._cfg.enabled:
            return
        try:
            self._write(message, component)
        except Exception as e:
            self._report(f"write failed: {e!r}")

    def _report(self, message: str) -> None:
        try:
            self._fallback(message)
        except Exception:
            pass

    def _ensure_directory(self) -> None:
        directory = self._cfg.directory
        if directory.is_dir():
            return
        directory.mkdir(parents=True, exist_ok=True)
        placeholder = directory / PLACEHOLDER_NAME
        if not placeholder.exists():
            placeholder.write_text("", encoding="utf-8")

    def _write(self, message: str, component: str) -> None:
        self._ensure_directory()
        now = self._clock()
        line = f"[{now.strftime('%Y-%m-%d %H:%M:%S')}] [{component}] {message}".replace("\n", " | ")

        with open(self._cfg.lock_path, "a") as lock_fp:
            fcntl.flock(lock_fp.fileno(), fcntl.LOCK_EX)
            try:
                self._maybe_rotate(now)
                with open(self._cfg.log_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
                os.chmod(self._cfg.log_path, LOG_FILE_MODE)
            finally:
                fcntl.flock(lock_fp.fileno(), fcntl.LOCK_UN)

    def _rotated_path(self, now: datetime) -> Path:
        stem = f"{self._cfg.base_name}_{now.strftime('%Y%m%d%H%M%S')}"
        candidate = self._cfg.directory / f"{stem}.log"
        n = 1
        while candidate.exists() or candidate.with_name(candidate.name + ".gz").exists():
            candidate = self._cfg.directory / f"{stem}_{n}.log"
            n += 1
        return candidate

    def _maybe_rotate(self, now: datetime) -> None:
        path = self._cfg.log_path
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return
        if size < self._cfg.max_bytes:
            return

        rotated = self._rotated_path(now)
        os.replace(path, rotated)
        try:
            compress_file(rotated)
        except OSError as e:
            # keep the uncompressed rotated file; the active log is already fresh
            self._report(f"compress failed for {rotated}: {e!r}")


def compress_file(path: Path) -> Path:
    target = path.with_name(path.name + ".gz")
    with open(path, "rb") as src, gzip.open(target, "wb") as dst:
        shutil.copyfileobj(src, dst)
    path.unlink()
    return target


class LogSinkHandler(logging.Handler):
    def __init__(self, sink: LogSink, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self._sink.write(f"{record.levelname} {message}", component=record.name)
