"""Append-only ledger file.

Document shape: ``{"entries": [...], "schema": {...}}``. Entries are only
ever appended. One append call writes all of its entries in a single
atomic file replace, under an in-process lock and an advisory ``fcntl``
lock on a sidecar ``.lock`` file, so concurrent writers never interleave.
"""

import asyncio
import fcntl
import threading
from pathlib import Path
from typing import Any

from folio.exceptions import PersistenceError
from folio.jsonfile import read_json, write_json_atomic
from folio.logging import get_logger
from folio.models import LedgerEntry

logger = get_logger(__name__)


class LedgerWriter:
    """Appends LedgerEntry records to the ledger file.

    A missing or empty file is an empty ledger. A corrupt file raises
    PersistenceError and is left untouched.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(f"{self._path.name}.lock")
        self._thread_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def append(self, entries: list[LedgerEntry]) -> None:
        """Append ``entries`` in order, all or nothing."""
        if not entries:
            return
        await asyncio.to_thread(self._append_sync, entries)
        logger.info("ledger_appended", path=str(self._path), entries=len(entries))

    async def read(self) -> list[LedgerEntry]:
        document = await asyncio.to_thread(self._load, self._path)
        return [LedgerEntry.from_dict(e) for e in document["entries"]]

    def _append_sync(self, entries: list[LedgerEntry]) -> None:
        with self._thread_lock:
            try:
                self._lock_path.parent.mkdir(parents=True, exist_ok=True)
                lock_file = open(self._lock_path, "a")
            except OSError as e:
                raise PersistenceError(f"cannot lock ledger {self._path}: {e}") from e

            with lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    document = self._load(self._path)
                    document["entries"].extend(e.to_dict() for e in entries)
                    write_json_atomic(self._path, document)
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    @staticmethod
    def _load(path: Path) -> dict[str, Any]:
        data = read_json(path)
        if data is None:
            return {"entries": [], "schema": {}}
        if not isinstance(data, dict) or not isinstance(data.get("entries", []), list):
            raise PersistenceError(f"unexpected ledger document in {path}")
        data.setdefault("entries", [])
        data.setdefault("schema", {})
        return data
