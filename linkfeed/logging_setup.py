from __future__ import annotations

import logging
import sys

from linkfeed.logsink.sink import LogSink, LogSinkHandler


def setup_logging(level: str, sink: LogSink | None = None) -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if sink is not None and sink.enabled:
        sink_handler = LogSinkHandler(sink)
        sink_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(sink_handler)

    for handler in handlers:
        root.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.INFO)
