from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from lifewall.common.constants import SCHEMA_VERSION
from lifewall.persist.base import Persistence
from lifewall.persist.stats import apply_game_end, merge_stats

logger = logging.getLogger(__name__)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


def _parse_timestamp(value: Any) -> float | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _atomic_write(path: Path, data: Dict[str, Any], indent: int | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(data, indent=indent), encoding="utf-8")
    os.replace(tmp, path)


class JsonFilePersistence(Persistence):
    """Session snapshot and stats stored as JSON documents on disk.

    Session saves are debounced on a writer thread: a burst of
    ``schedule_save`` calls produces one write once the burst has been quiet
    for ``debounce_seconds``, or after ``max_delay_seconds`` at the latest.
    """

    def __init__(
        self,
        state_path: str,
        stats_path: str,
        debounce_seconds: float = 5.0,
        max_delay_seconds: float = 30.0,
        max_age_seconds: float = 86400.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.state_path = Path(state_path)
        self.stats_path = Path(stats_path)
        self.debounce_seconds = debounce_seconds
        self.max_delay_seconds = max(max_delay_seconds, debounce_seconds)
        self.max_age_seconds = max_age_seconds
        self.clock = clock
        self._cond = threading.Condition()
        self._pending: Dict[str, Any] | None = None
        self._first_request_at = 0.0
        self._last_request_at = 0.0
        self._writing = False
        self._flush_requested = False
        self._stop = False
        self._clears = 0
        self._stats_lock = threading.Lock()
        self.saves = 0
        self._writer_thread = threading.Thread(
            target=self._writer_loop, name="state-writer", daemon=True
        )
        self._writer_thread.start()

    # Session snapshot

    def load_session(self) -> Optional[Dict[str, Any]]:
        """Return the saved document, or None when missing, stale or foreign."""
        if not self.state_path.exists():
            logger.info("No saved state at %s", self.state_path)
            return None
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to load game state from %s", self.state_path)
            return None
        if not isinstance(data, dict) or data.get("version") != SCHEMA_VERSION:
            version = data.get("version") if isinstance(data, dict) else None
            logger.info("Ignoring saved state with schema version %r", version)
            return None
        saved_at = _parse_timestamp(data.get("saved_at"))
        if saved_at is None:
            logger.info("Ignoring saved state without a valid saved_at")
            return None
        age = self.clock() - saved_at
        if age > self.max_age_seconds:
            logger.info("Ignoring stale saved state (%.0fs old)", age)
            return None
        return data

    def schedule_save(self, document: Dict[str, Any]) -> None:
        with self._cond:
            if self._stop:
                logger.warning("Save requested after persistence was closed")
                return
            now = time.monotonic()
            if self._pending is None:
                self._first_request_at = now
            self._pending = document
            self._last_request_at = now
            self._cond.notify_all()

    def clear_session(self) -> None:
        with self._cond:
            self._pending = None
            self._clears += 1
            while self._writing:
                self._cond.wait()
            try:
                if self.state_path.exists():
                    self.state_path.write_text("{}", encoding="utf-8")
            except OSError:
                logger.exception("Failed to clear game state at %s", self.state_path)
        logger.info("Game state cleared")

    def flush(self, timeout: float = 5.0) -> None:
        """Write any pending snapshot now and wait for it to land."""
        deadline = time.monotonic() + timeout
        with self._cond:
            self._flush_requested = True
            self._cond.notify_all()
            while self._pending is not None or self._writing:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("Timed out flushing game state")
                    break
                self._cond.wait(timeout=remaining)
            self._flush_requested = False

    def close(self) -> None:
        self.flush()
        with self._cond:
            self._stop = True
            self._cond.notify_all()
        self._writer_thread.join(timeout=2)

    def _due_at(self) -> float:
        return min(
            self._last_request_at + self.debounce_seconds,
            self._first_request_at + self.max_delay_seconds,
        )

    def _writer_loop(self) -> None:
        while True:
            with self._cond:
                while self._pending is None and not self._stop:
                    self._cond.wait()
                if self._pending is None:
                    break
                if not (self._stop or self._flush_requested):
                    delay = self._due_at() - time.monotonic()
                    if delay > 0:
                        self._cond.wait(timeout=delay)
                        continue
                document = self._pending
                self._pending = None
                self._writing = True
                clears = self._clears
            try:
                self._write_state(document)
            except OSError:
                logger.exception("Failed to save game state to %s", self.state_path)
                with self._cond:
                    # retry on the next debounce window
                    if (
                        self._pending is None
                        and self._clears == clears
                        and not (self._stop or self._flush_requested)
                    ):
                        now = time.monotonic()
                        self._pending = document
                        self._first_request_at = now
                        self._last_request_at = now
            finally:
                with self._cond:
                    self._writing = False
                    self._cond.notify_all()

    def _write_state(self, document: Dict[str, Any]) -> None:
        payload = dict(document)
        payload["version"] = SCHEMA_VERSION
        payload["saved_at"] = _iso(self.clock())
        _atomic_write(self.state_path, payload)
        self.saves += 1
        logger.info("State saved to disk: %s", document.get("summary", ""))

    # Stats

    def load_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            return self._read_stats()

    def record_game_end(
        self,
        winner: Optional[Dict[str, Any]],
        palette: Optional[str],
        category: Optional[str],
    ) -> Dict[str, Any]:
        with self._stats_lock:
            stats = apply_game_end(self._read_stats(), winner, palette, category, _iso(self.clock()))
            try:
                _atomic_write(self.stats_path, stats, indent=4)
            except OSError:
                logger.exception("Failed to save stats to %s", self.stats_path)
        logger.info(
            "Game #%s ended - Winner: %s (%s cells)",
            stats["games_played"],
            winner.get("name") if winner else "none",
            winner.get("count", 0) if winner else 0,
        )
        return stats

    def _read_stats(self) -> Dict[str, Any]:
        if not self.stats_path.exists():
            return merge_stats(None)
        try:
            return merge_stats(json.loads(self.stats_path.read_text(encoding="utf-8")))
        except (OSError, ValueError):
            logger.exception("Failed to load stats from %s", self.stats_path)
            return merge_stats(None)
