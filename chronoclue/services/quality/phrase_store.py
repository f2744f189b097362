"""File-backed persistence for learned leak phrases.

Learned phrases are stored as a JSON list next to a lock file. Writes go
through a temp file and ``os.replace`` so a crash mid-write never leaves a
truncated library behind.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

import fasteners
from loguru import logger


class LeakPhraseStore:
    """Thread-safe and process-safe store for learned leak phrases.

    USAGE:
        store = LeakPhraseStore(Path("data/learned_phrases.json"))
        store.append({"phrase": "...", "year_range": [1815, 1815]}, max_entries=10000)
        phrases = store.load()
    """

    def __init__(self, path: Path):
        self.path = Path(path).resolve()
        self.lock_file = self.path.with_suffix(self.path.suffix + ".lock")
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Inter-process lock for read-modify-write across PROCESSES
        self._lock = fasteners.InterProcessLock(str(self.lock_file))
        # InterProcessLock is not thread-safe
        self._thread_lock = threading.Lock()

    def _read(self) -> list[dict[str, Any]]:
        """Read entries from disk (must hold lock)."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Learned phrase file is corrupt, ignoring it: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Learned phrase file contains non-list data: {type(data)}")
            return []
        return [entry for entry in data if isinstance(entry, dict) and entry.get("phrase")]

    def _write(self, entries: list[dict[str, Any]]) -> None:
        """Write entries with atomic write-then-rename (must hold lock)."""
        content = json.dumps(entries, indent=2)
        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.stem}.tmp.",
            suffix=".json",
            text=True,
        )
        try:
            os.write(fd, content.encode("utf-8"))
            os.fsync(fd)
            os.close(fd)
            os.replace(temp_path, self.path)
        except OSError:
            try:
                os.close(fd)
            except OSError:
                pass
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def load(self) -> list[dict[str, Any]]:
        with self._thread_lock:
            with self._lock:
                return self._read()

    def append(self, entry: dict[str, Any], max_entries: int) -> bool:
        """Add a phrase unless already stored, evicting the oldest past ``max_entries``.

        Returns:
            True if the phrase was new
        """
        with self._thread_lock:
            with self._lock:
                entries = self._read()
                if any(existing["phrase"] == entry["phrase"] for existing in entries):
                    return False
                entries.append(entry)
                if max_entries >= 0 and len(entries) > max_entries:
                    entries = entries[len(entries) - max_entries :]
                self._write(entries)
                return True

    def clear(self) -> int:
        with self._thread_lock:
            with self._lock:
                count = len(self._read())
                self._write([])
                logger.info(f"Cleared {count} learned leak phrases")
                return count
