"""Logging bootstrap for the CLI: a rotating log file plus stderr."""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

__all__ = ["setup_logging"]

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
_LOG_FILENAME = "modstamp.log"
# Third-party loggers that only matter when they warn.
_QUIET_LOGGERS: tuple[str, ...] = ("asyncio", "ruamel.yaml")
_log_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path:
    """Send records to ``<log_dir>/modstamp.log`` (and stderr) and return the log path.

    The log directory defaults to ``$MODSTAMP_LOG_DIR`` or ``~/.modstamp/logs``.
    Later calls are no-ops unless ``force`` is set, which is how the CLI
    switches to debug output once settings are loaded.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    directory = _log_directory(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / _LOG_FILENAME

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(path, maxBytes=512 * 1024, backupCount=2, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _log_path = path
    return path


def _log_directory(log_dir: Path | str | None) -> Path:
    if log_dir:
        return Path(log_dir).expanduser()
    override = os.environ.get("MODSTAMP_LOG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".modstamp" / "logs"
