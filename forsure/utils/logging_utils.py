"""
Logging helpers shared by the ForSure services.

Search lines carry counts, kinds and ids only. Raw phone numbers, emails,
addresses and names never reach a sink.
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import LOG_DIR

_TRUTHY = {"1", "true", "yes", "on"}


def resolve_log_level(explicit: str | None = None) -> str:
    """``explicit`` wins over ``LOG_LEVEL``; INFO otherwise."""
    return (explicit or os.getenv("LOG_LEVEL") or "INFO").upper()


def add_env_sinks(log_dir: Path = LOG_DIR) -> list[int]:
    """
    Attach the sinks switched on from the environment and return their ids.

    ``LOG_DEBUG_FILE`` names a plain DEBUG file. ``LOG_JSON`` writes
    serialized records to ``<log_dir>/forsure_{time}.jsonl`` for ingestion
    by log shippers. Variables are never rendered into tracebacks.
    """
    sink_ids = []

    debug_file = os.getenv("LOG_DEBUG_FILE")
    if debug_file:
        sink_ids.append(logger.add(debug_file, level="DEBUG", backtrace=True, diagnose=False))

    if os.getenv("LOG_JSON", "").lower() in _TRUTHY:
        log_dir.mkdir(parents=True, exist_ok=True)
        sink_ids.append(
            logger.add(log_dir / "forsure_{time}.jsonl", level="DEBUG", serialize=True, diagnose=False)
        )
    return sink_ids


def log_search(
    *,
    source: str,
    kind: str,
    results_raw: int,
    results_kept: int | None = None,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """
    Emit one structured line per search.

    ``source`` is the searched table or subsystem (``property_records``,
    ``network``), ``kind`` the search kind (``address``, ``name``,
    ``phone``, ``email``, ``linkage``). Extra ``context`` should be ids or
    pass names; the query value itself is not accepted.
    """
    fields: dict[str, Any] = {"source": source, "kind": kind, "results_raw": results_raw}
    if results_kept is not None:
        fields["results_kept"] = results_kept
    if duration_ms is not None:
        fields["duration_ms"] = round(duration_ms, 1)
    fields.update(context)
    logger.bind(**fields).info(f"search {source}/{kind}: {results_raw} rows")


class Timer:
    """Context manager exposing ``elapsed_ms`` once the block exits."""

    elapsed_ms: float = 0.0

    def __enter__(self) -> Timer:
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
