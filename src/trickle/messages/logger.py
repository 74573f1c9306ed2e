"""
Logging configuration for trickle.

TrickleLogger wraps a standard library logger with colour-coded console
output and a plain log file under `logs/`. Loggers named
`trickle.entity.<name>` get the entity name printed as a tag in front of
every message, so interleaved output from one run stays easy to follow.
"""
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Optional

import colorama

# Initialize colorama for cross-platform color support
colorama.init()

ENTITY_LOGGER_PREFIX = "trickle.entity."


def _get_event_loop_time() -> float:
    """
    Get current event loop time, falling back to time.monotonic().

    Works from both async code and plain synchronous callers (CLI, tests).
    """
    try:
        return asyncio.get_running_loop().time()
    except RuntimeError:
        return time.monotonic()


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors"""

    COLORS = {
        "INFO": colorama.Fore.BLUE,
        "WARNING": colorama.Fore.YELLOW,
        "ERROR": colorama.Fore.RED,
        "DEBUG": colorama.Fore.BLUE,
        "START": colorama.Fore.CYAN,
        "OK": colorama.Fore.GREEN,
    }

    def __init__(self, fmt=None, datefmt=None, use_color: bool = True):
        super().__init__(fmt, datefmt)
        self.use_color = use_color

    def format(self, record):
        # trickle.entity.crm.orders -> [crm.orders]
        if record.name.startswith(ENTITY_LOGGER_PREFIX):
            entity_name = record.name[len(ENTITY_LOGGER_PREFIX) :]
            if self.use_color:
                white = colorama.Fore.WHITE
                reset = colorama.Style.RESET_ALL
                record.entity_tag = f"{white}[{entity_name}]{reset} "
            else:
                record.entity_tag = f"[{entity_name}] "
        else:
            record.entity_tag = ""

        message = super().format(record)
        if self.use_color and getattr(record, "color_prefix", None):
            color = self.COLORS.get(record.color_prefix, "")
            message = f"{color}{message}{colorama.Style.RESET_ALL}"
        elif self.use_color and record.levelname in ("WARNING", "ERROR"):
            color = self.COLORS[record.levelname]
            message = f"{color}{message}{colorama.Style.RESET_ALL}"
        return message


class TrickleLogger:
    """
    Central logging class for trickle.

    Writes to stdout and to `logs/trickle.log` in the working directory.
    Handlers are attached once per logger name, so creating a TrickleLogger
    for the same name repeatedly is cheap.
    """

    EXPORT_TEMPLATE = "Exported {:,} rows in {:.1f}s ({:,.0f} rows/s)"

    _level = logging.INFO

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

        if not self.logger.handlers:
            self.logger.setLevel(TrickleLogger._level)

            log_dir = Path.cwd() / "logs"
            log_dir.mkdir(exist_ok=True)

            file_handler = logging.FileHandler(
                log_dir / "trickle.log", encoding="utf-8"
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                ColorFormatter(
                    "%(asctime)s  %(levelname)-7s %(entity_tag)s%(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                    use_color=False,
                )
            )

            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(
                ColorFormatter(
                    "%(asctime)s  %(entity_tag)s%(message)s", datefmt="%H:%M:%S"
                )
            )

            self.logger.addHandler(file_handler)
            self.logger.addHandler(console_handler)

            # Prevent logs from being passed to root logger
            self.logger.propagate = False

    @classmethod
    def set_verbose(cls, verbose: bool) -> None:
        """Switch every trickle logger between INFO and DEBUG."""
        cls._level = logging.DEBUG if verbose else logging.INFO
        for name in list(logging.root.manager.loggerDict):
            if name == "trickle" or name.startswith("trickle."):
                logging.getLogger(name).setLevel(cls._level)

    def info(self, msg: str, color_prefix: Optional[str] = None) -> None:
        """Log info message with optional color prefix"""
        extra = {"color_prefix": color_prefix} if color_prefix else None
        self.logger.info(msg, extra=extra)

    def start(self, msg: str) -> None:
        """Log start message in cyan"""
        self.info(f"START {msg}", color_prefix="START")

    def success(self, msg: str) -> None:
        """Log success message in green"""
        self.info(f"OK {msg}", color_prefix="OK")

    def error(self, msg: str) -> None:
        self.logger.error(msg)

    def warning(self, msg: str) -> None:
        self.logger.warning(msg)

    def debug(self, msg: str) -> None:
        self.logger.debug(msg)


def get_logger(name: str) -> TrickleLogger:
    """Get a configured logger instance."""
    return TrickleLogger(name)
