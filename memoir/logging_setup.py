from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .settings import get_data_dir

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(session_id)s | %(entity_id)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

LOG_SESSION_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_session_id", default=None)
LOG_ENTITY_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_entity_id", default=None)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = LOG_SESSION_ID.get() or "-"
        record.entity_id = LOG_ENTITY_ID.get() or "-"
        return True


@contextmanager
def log_context(session_id: Optional[str] = None, entity_id: Optional[str] = None) -> Iterator[None]:
    tokens = []
    if session_id is not None:
        tokens.append((LOG_SESSION_ID, LOG_SESSION_ID.set(session_id)))
    if entity_id is not None:
        tokens.append((LOG_ENTITY_ID, LOG_ENTITY_ID.set(entity_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def default_log_file() -> Path:
    return get_data_dir() / "logs" / "memoir.log"


def configure_logging(
    log_file: str | Path | None = None,
    level: int = logging.INFO,
    enable_console: bool = False,
    force: bool = False,
) -> logging.Logger:
    root = logging.getLogger()
    if getattr(root, "_memoir_logging_configured", False) and not force:
        return root

    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for log_filter in list(root.filters):
            root.removeFilter(log_filter)

    log_path = Path(log_file) if log_file else default_log_file()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    context_filter = ContextFilter()

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.addFilter(context_filter)
    root.addHandler(file_handler)

    if enable_console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.addFilter(context_filter)
        root.addHandler(stream_handler)

    root.setLevel(level)
    logging.captureWarnings(True)
    root._memoir_logging_configured = True
    return root
