"""
Logging Configuration

Structured logging for pipeline runs.
"""

import logging
import sys
import time

LOGGER_NAME = "shipline"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(
    level: int | str = logging.INFO,
    log_file: str | None = None,
    format_string: str | None = None,
) -> None:
    """
    Configure the ``shipline`` logger.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional file path for log output
        format_string: Custom format string
    """
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    root_logger = logging.getLogger(LOGGER_NAME)
    root_logger.setLevel(level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


class RunLogger:
    """
    Logger scoped to one pipeline run.

    Prefixes messages with the run id and tracks stage durations.
    """

    def __init__(self, run_id: str):
        self.run_id = run_id
        self.logger = logging.getLogger(f"{LOGGER_NAME}.run")
        self._stage_start_times: dict[str, float] = {}

    def info(self, message: str, *args: object) -> None:
        self.logger.info(f"[{self.run_id}] {message}", *args)

    def warning(self, message: str, *args: object) -> None:
        self.logger.warning(f"[{self.run_id}] {message}", *args)

    def error(self, message: str, *args: object) -> None:
        self.logger.error(f"[{self.run_id}] {message}", *args)

    def stage_start(self, stage_id: str) -> None:
        self._stage_start_times[stage_id] = time.monotonic()
        self.info("Stage '%s' started", stage_id)

    def stage_end(self, stage_id: str, status: str, detail: str = "") -> None:
        duration = 0.0
        if stage_id in self._stage_start_times:
            duration = time.monotonic() - self._stage_start_times.pop(stage_id)
        if detail:
            self.info("Stage '%s' %s in %.2fs: %s", stage_id, status, duration, detail)
        else:
            self.info("Stage '%s' %s in %.2fs", stage_id, status, duration)

    def stage_skipped(self, stage_id: str, reason: str) -> None:
        self.info("Stage '%s' skipped: %s", stage_id, reason)
