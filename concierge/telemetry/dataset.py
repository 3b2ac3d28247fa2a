"""
Routing telemetry dataset: one JSON object per line, append-only.

Writes go through a single writer thread fed by an in-order queue so lines
from concurrent chats never interleave. Records are never mutated after they
are written. The reader tolerates a missing file and skips malformed lines.
"""

import json
import os
import queue
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from concierge.core.config import Config
from concierge.core.logger import get_logger

MAX_READ_LIMIT = 20000

_STOP = object()


def truncate_inline(text: str, max_chars: int) -> str:
    """Collapse whitespace and cut to max_chars (with a trailing ellipsis)."""
    flat = " ".join((text or "").split())
    if len(flat) <= max_chars:
        return flat
    return flat[: max(0, max_chars - 3)] + "..."


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class RoutingTelemetryEntry:
    """One routing decision, as persisted."""
    chat_id: Union[int, str]
    source: str
    text: str
    route_candidates: List[str]
    final_handler: str
    handled: bool
    ts: str = field(default_factory=utc_timestamp)
    user_id: Optional[Union[int, str]] = None
    detected: List[str] = field(default_factory=list)
    route_filter_reason: Optional[str] = None
    route_filter_allowed: Optional[List[str]] = None
    semantic: Optional[Dict[str, Any]] = None
    ai: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        self.text = truncate_inline((self.text or "").strip(), Config.TELEMETRY_TEXT_MAX_CHARS)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # Optional sections are omitted rather than written as null
        for key in ("user_id", "route_filter_reason", "route_filter_allowed", "semantic", "ai"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class RoutingDatasetSink:
    """Append-only JSONL writer with a single in-order writer thread."""

    def __init__(self, path: Optional[str] = None, enabled: Optional[bool] = None):
        self.path = path or Config.TELEMETRY_PATH
        self.enabled = Config.TELEMETRY_ENABLED if enabled is None else enabled
        self.logger = get_logger()
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.written = 0
        self.failed = 0

    def _ensure_writer(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._writer_loop, name="TelemetryWriter", daemon=True)
            self._thread.start()

    def append(self, entry: Union[RoutingTelemetryEntry, Dict[str, Any]]) -> None:
        """Queue one record for writing (returns immediately)."""
        if not self.enabled:
            return
        record = entry.to_dict() if isinstance(entry, RoutingTelemetryEntry) else dict(entry)
        self._ensure_writer()
        self._queue.put(json.dumps(record, ensure_ascii=False))

    def flush(self) -> None:
        """Block until every queued record has been written (or failed)."""
        if self._thread is None:
            return
        self._queue.join()

    def close(self) -> None:
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=2.0)
        self._thread = None

    def _writer_loop(self) -> None:
        while True:
            line = self._queue.get()
            try:
                if line is _STOP:
                    return
                self._write_line(line)
            finally:
                self._queue.task_done()

    def _write_line(self, line: str) -> None:
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
            self.written += 1
        except OSError as e:
            self.failed += 1
            self.logger.warning(f"[TELEMETRY] could not persist routing record: {e}")


def _is_valid_entry(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("chat_id"), (int, str))
        and isinstance(data.get("text"), str)
    )


def read_entries(path: Optional[str] = None, limit: int = 1000) -> List[Dict[str, Any]]:
    """
    Read the newest `limit` records (capped at MAX_READ_LIMIT).

    Missing file -> []. Blank, malformed or incomplete lines are skipped.
    """
    path = path or Config.TELEMETRY_PATH
    limit = max(1, min(MAX_READ_LIMIT, int(limit)))
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = [line.strip() for line in f if line.strip()]
    except FileNotFoundError:
        return []

    entries: List[Dict[str, Any]] = []
    skipped = 0
    for line in lines[-limit:]:
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            skipped += 1
            continue
        if _is_valid_entry(data):
            entries.append(data)
        else:
            skipped += 1
    if skipped:
        get_logger().debug(f"[TELEMETRY] skipped {skipped} malformed line(s) in {path}")
    return entries
