"""Logging setup: colored stderr output plus a TRACE level below DEBUG."""

import logging
import os
import sys

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

NOISY_LOGGERS = ("web3", "urllib3", "requests")

LEVEL_COLORS = {
    TRACE: "\033[90m",
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
RESET = "\033[0m"
BOLD = "\033[1m"


class ColoredFormatter(logging.Formatter):
    """Paints the level name; plain output when ``use_color`` is off."""

    def __init__(self, *args, use_color: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def formatMessage(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno)
        if not self.use_color or color is None:
            return super().formatMessage(record)
        # other handlers must still see the plain level name
        values = dict(record.__dict__)
        values["levelname"] = f"{color}{BOLD}{record.levelname}{RESET}"
        return self._style._fmt % values


def resolve_level(level: str | None = None) -> int:
    """Numeric level for ``level``, else $LOG_LEVEL, else INFO."""
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    if name == "TRACE":
        return TRACE
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str | None = None) -> None:
    """Configure root logging on stderr, leaving stdout to CLI JSON output.

    At DEBUG the web3, urllib3 and requests loggers stay at WARNING; TRACE
    lets them through as well.
    """
    numeric_level = resolve_level(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        ColoredFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            use_color=sys.stderr.isatty(),
        )
    )
    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)

    noisy_level = TRACE if numeric_level <= TRACE else logging.WARNING
    if numeric_level <= logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
