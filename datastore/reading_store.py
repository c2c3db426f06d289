from __future__ import annotations

import json
import logging
import os
from bisect import insort
from datetime import datetime
from functools import lru_cache
from itertools import count
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from models.records import Clock, Reading, StoredReading, utc_now
from services.errors import ReadingNotFoundError, StoreError
from settings import get_settings

logger = logging.getLogger(__name__)

# (timestamp, created_at, sequence) orders a device's readings; the last
# entry is the latest reading.
_IndexKey = Tuple[int, datetime, int]


class ReadingStore:
    """Append-only reading store indexed by ``(device_id, timestamp)``.

    Each device owns a list kept sorted by ``(timestamp, created_at,
    sequence)``, so :meth:`latest` is a dictionary lookup plus one tail read no
    matter how many readings other devices have. When ``journal_path`` is set,
    every insert is appended to a JSON Lines journal before it becomes visible,
    and the index is rebuilt from that journal on start-up.

    Writers serialise on ``_write_lock`` for the journal append; only the
    in-memory link takes ``_index_lock``. Reads take no lock, so a slow
    journal write never delays :meth:`latest`.
    """

    def __init__(
        self,
        name: str,
        journal_path: Optional[Path] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.name = name
        self.journal_path = journal_path
        self.clock = clock
        self._index: Dict[str, List[Tuple[_IndexKey, StoredReading]]] = {}
        self._sequence = count()
        self._total = 0
        self._closed = False
        self._write_lock = Lock()
        self._index_lock = Lock()
        if journal_path:
            try:
                journal_path.parent.mkdir(parents=True, exist_ok=True)
                self._load_from_disk()
            except OSError as exc:
                raise StoreError(f"Cannot open journal for store {name!r}: {exc}") from exc

    def insert(self, reading: Reading) -> StoredReading:
        with self._write_lock:
            self._ensure_open()
            stored = StoredReading(
                id=uuid4().hex,
                device_id=reading.device_id,
                value=reading.value,
                timestamp=reading.timestamp,
                created_at=self.clock(),
            )
            try:
                self._append(stored)
            except OSError as exc:
                raise StoreError(
                    f"Failed to persist reading in store {self.name!r}: {exc}",
                    device_id=reading.device_id,
                ) from exc
            self._link(stored)
            return stored

    def latest(self, device_id: str) -> StoredReading:
        self._ensure_open()
        # dict.get and list[-1] are atomic; insort only ever inserts whole entries.
        entries = self._index.get(device_id)
        if not entries:
            raise ReadingNotFoundError(device_id)
        return entries[-1][1]

    def count(self, device_id: Optional[str] = None) -> int:
        with self._index_lock:
            if device_id is None:
                return self._total
            return len(self._index.get(device_id, ()))

    def ping(self) -> None:
        """Raise :class:`StoreError` unless the store can accept writes."""

        self._ensure_open()
        if not self.journal_path:
            return
        directory = self.journal_path.parent
        if not directory.is_dir() or not os.access(directory, os.W_OK):
            raise StoreError(
                f"Journal directory {str(directory)!r} for store {self.name!r} is not writable."
            )

    def close(self) -> None:
        with self._write_lock:
            self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError(f"Store {self.name!r} is closed.")

    def _link(self, stored: StoredReading) -> None:
        with self._index_lock:
            key: _IndexKey = (stored.timestamp, stored.created_at, next(self._sequence))
            entries = self._index.setdefault(stored.device_id, [])
            insort(entries, (key, stored), key=lambda entry: entry[0])
            self._total += 1

    def _append(self, stored: StoredReading) -> None:
        if not self.journal_path:
            return
        line = json.dumps(stored.to_document(), sort_keys=True)
        with self.journal_path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def _load_from_disk(self) -> None:
        if not self.journal_path or not self.journal_path.exists():
            return

        last_line = ""
        with self.journal_path.open("r", encoding="utf-8", errors="replace") as handle:
            for line_number, line in enumerate(handle, start=1):
                last_line = line
                if not line.strip():
                    continue
                try:
                    stored = StoredReading.from_document(json.loads(line))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                    logger.warning(
                        "Skipping unreadable journal line %d: %s",
                        line_number,
                        exc,
                        extra={"store": self.name, "reason": "corrupt_journal_line"},
                    )
                    continue
                self._link(stored)

        # A torn final line would swallow the next appended record.
        if last_line and not last_line.endswith("\n"):
            logger.warning(
                "Terminating incomplete journal tail",
                extra={"store": self.name, "reason": "torn_journal_tail"},
            )
            with self.journal_path.open("a", encoding="utf-8") as handle:
                handle.write("\n")

        logger.info(
            "Loaded %d readings from journal",
            self._total,
            extra={"store": self.name},
        )


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReadingStore:
    settings = get_settings()
    store_name = settings.store_name if name is None else name
    journal = settings.store_journal_path if path is None else path
    journal_path = Path(journal) if journal else None
    return ReadingStore(name=store_name, journal_path=journal_path)
