"""
Logging module for Concierge.

One line per pipeline decision, coloured by level through rich. Lines that
start with a stage tag (``[ROUTER] ...``) get the tag rendered in its own
style, and quiet mode drops the chatty per-stage tags entirely.
"""
import re
from datetime import datetime
from typing import Dict, Optional

from rich.console import Console
from rich.text import Text

from concierge.core.config import Config

console = Console(highlight=False)

LEVELS: Dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}

LEVEL_STYLES: Dict[str, str] = {
    "DEBUG": "dim cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold red",
}

TAG_STYLES: Dict[str, str] = {
    "ROUTER": "bold magenta",
    "LLM_ROUTER": "magenta",
    "CONFIRM": "bold yellow",
    "CLARIFY": "yellow",
    "SEQ": "bold blue",
    "LIST": "blue",
    "DISPATCH": "bold green",
}

# Stage tags hidden in quiet mode
QUIET_TAGS = ("DETECT", "FILTER", "TELEMETRY", "LOOP", "SWEEP", "TIMEBOX")

_TAG_RE = re.compile(r"^\[([A-Z_]+)\]\s?")
_QUIET_RE = re.compile(r"\[(?:" + "|".join(QUIET_TAGS) + r")\]")


class Logger:
    """Level-gated console logger"""

    def __init__(self, level: str = "INFO", quiet_mode: bool = False):
        self.level = level.upper()
        self.quiet_mode = quiet_mode

    @property
    def threshold(self) -> int:
        return LEVELS.get(self.level, LEVELS["INFO"])

    def enabled_for(self, level: str) -> bool:
        return LEVELS.get(level, 0) >= self.threshold

    def _render(self, level: str, message: str) -> Text:
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        style = LEVEL_STYLES.get(level, "white")
        line = Text(f"[{stamp}] [{level:8}] ", style=style)

        match = _TAG_RE.match(message)
        if match and match.group(1) in TAG_STYLES:
            line.append(match.group(0), style=TAG_STYLES[match.group(1)])
            message = message[match.end():]
        line.append(message, style=style)
        return line

    def log(self, level: str, message: str) -> None:
        level = level.upper()
        if not self.enabled_for(level):
            return
        if self.quiet_mode and _QUIET_RE.search(message):
            return
        console.print(self._render(level, message))

    def debug(self, message: str) -> None:
        self.log("DEBUG", message)

    def info(self, message: str) -> None:
        self.log("INFO", message)

    def warning(self, message: str) -> None:
        self.log("WARNING", message)

    def error(self, message: str) -> None:
        self.log("ERROR", message)

    def critical(self, message: str) -> None:
        self.log("CRITICAL", message)


_global_logger: Optional[Logger] = None


def init_logger(level: str = "INFO", quiet_mode: bool = False) -> Logger:
    """
    Replace the process-wide logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        quiet_mode: Drop detector, filter, telemetry and loop lines
    """
    global _global_logger
    _global_logger = Logger(level, quiet_mode=quiet_mode)
    return _global_logger


def get_logger() -> Logger:
    """Process-wide logger, built from Config on first use."""
    global _global_logger
    if _global_logger is None:
        _global_logger = Logger(Config.LOG_LEVEL, quiet_mode=Config.QUIET_MODE)
    return _global_logger


def set_quiet_mode(enabled: bool) -> None:
    get_logger().quiet_mode = enabled
