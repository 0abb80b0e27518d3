"""Persisted snapshot file and its timestamped history archive.

The positions file is the only state carried between fetch cycles. It is
replaced atomically; a failed write leaves the previous snapshot intact.
"""

import asyncio
from datetime import UTC, datetime
from pathlib import Path

from folio.exceptions import PersistenceError
from folio.jsonfile import read_json, write_json_atomic
from folio.logging import get_logger
from folio.models import Snapshot

logger = get_logger(__name__)


class SnapshotStore:
    """Loads and saves the canonical snapshot document.

    Args:
        positions_file: Path of the current snapshot.
        history_dir: Directory receiving ``positions_YYYY-MM-DD_HH-MM-SS.json`` copies.
    """

    def __init__(self, positions_file: str | Path, history_dir: str | Path) -> None:
        self._positions_file = Path(positions_file)
        self._history_dir = Path(history_dir)

    @property
    def positions_file(self) -> Path:
        return self._positions_file

    async def load_previous(self) -> Snapshot:
        """Return the last committed snapshot, or an empty one on first run.

        Raises:
            PersistenceError: the file exists but is unreadable or corrupt.
        """
        data = await asyncio.to_thread(read_json, self._positions_file)
        if data is None:
            logger.info("no_previous_snapshot", path=str(self._positions_file))
            return Snapshot.empty()
        if not isinstance(data, dict):
            raise PersistenceError(f"unexpected snapshot document in {self._positions_file}")

        snapshot = Snapshot.from_dict(data)
        logger.info(
            "previous_snapshot_loaded",
            last_updated=snapshot.last_updated,
            positions=snapshot.position_count,
        )
        return snapshot

    async def save(self, snapshot: Snapshot) -> None:
        """Atomically replace the positions file with ``snapshot``."""
        await asyncio.to_thread(write_json_atomic, self._positions_file, snapshot.to_dict())
        logger.info(
            "snapshot_saved",
            path=str(self._positions_file),
            positions=snapshot.position_count,
        )

    async def archive(self, snapshot: Snapshot, now: datetime | None = None) -> Path:
        """Write a timestamped copy of ``snapshot`` to the history directory."""
        stamp = (now or datetime.now(UTC)).strftime("%Y-%m-%d_%H-%M-%S")
        path = self._history_dir / f"positions_{stamp}.json"
        await asyncio.to_thread(write_json_atomic, path, snapshot.to_dict())
        logger.info("snapshot_archived", path=str(path))
        return path
