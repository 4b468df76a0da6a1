"""Loguru helpers for file logging in CLI commands."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from niomon.utils.helpers import ensure_dir, get_data_path

_SINK_IDS: dict[str, tuple[int, Path]] = {}


def ensure_rotating_log_file(name: str, level: str = "INFO", log_dir: Path | None = None) -> Path:
    """Ensure a rotating log sink for the given command name (once per process)."""
    existing = _SINK_IDS.get(name)
    if existing is not None:
        return existing[1]
    directory = ensure_dir(log_dir or get_data_path() / "logs")
    log_path = directory / f"{name}.log"
    sink_id = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[name] = (sink_id, log_path)
    return log_path


def remove_log_sinks() -> None:
    for sink_id, _ in _SINK_IDS.values():
        logger.remove(sink_id)
    _SINK_IDS.clear()
