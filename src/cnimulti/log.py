import logging
import os
import sys
from pathlib import Path
from typing import Mapping

from rich.console import Console
from rich.logging import RichHandler

from cnimulti.protocol import env_flag

FORMAT = "%(message)s"
FILE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

LOG_LEVEL_ENV = "CNI_MULTI_LOG_LEVEL"
LOG_FILE_ENV = "CNI_MULTI_LOG_FILE"
LOG_PLAIN_ENV = "CNI_MULTI_LOG_PLAIN"

log = logging.getLogger("cnimulti")


def _resolve_level(raw: str | None, default: int) -> int:
    if not raw:
        return default
    level = logging.getLevelName(raw.strip().upper())
    if isinstance(level, int):
        return level
    return default


def _file_handler(log_file: str) -> logging.Handler:
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def init_logging(environ: Mapping[str, str] | None = None) -> logging.Logger:
    """Attach handlers to the `cnimulti` logger.

    Standard output carries the CNI result, so console logs always go to stderr:
    through rich unless `CNI_MULTI_LOG_PLAIN` is set (e.g. when the orchestrator
    captures stderr into its own log). The console logs at `CNI_MULTI_LOG_LEVEL`
    (default WARNING).

    If `CNI_MULTI_LOG_FILE` names a path, records at INFO and above (or the console
    level, if that is lower) are also appended there. A log file that cannot be
    opened is reported on the console and otherwise ignored.

    Calling this more than once replaces the handlers installed previously.
    """
    env = os.environ if environ is None else environ
    level = _resolve_level(env.get(LOG_LEVEL_ENV), logging.WARNING)

    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    if env_flag(LOG_PLAIN_ENV, environ=env):
        console_handler: logging.Handler = logging.StreamHandler(sys.stderr)
    else:
        console_handler = RichHandler(console=Console(stderr=True, width=100))
    console_handler.setFormatter(logging.Formatter(FORMAT, datefmt="[%X]"))
    console_handler.setLevel(level)
    log.addHandler(console_handler)
    log.setLevel(level)
    log.propagate = False

    log_file = env.get(LOG_FILE_ENV)
    if log_file:
        try:
            file_handler = _file_handler(log_file)
        except OSError as exc:
            log.warning("Cannot open log file %s, logging to stderr only: %s", log_file, exc)
        else:
            file_level = min(level, logging.INFO)
            file_handler.setLevel(file_level)
            log.addHandler(file_handler)
            log.setLevel(file_level)

    return log


def set_verbosity(verbose: bool = False) -> int:
    """Set the verbosity of the logger and its handlers to DEBUG if `verbose` is
    True, else WARNING. Returns the old log level."""
    old_level = log.getEffectiveLevel()
    level = logging.DEBUG if verbose else logging.WARNING
    log.setLevel(level)
    for handler in log.handlers:
        handler.setLevel(level)
    return old_level
