"""Snapshot differencing and significance filtering.

The diff works on flat key -> Position maps, so moving a position between
categories or accounts never produces a change on its own.
"""

from collections import Counter
from dataclasses import replace

from folio.config import SignificanceSettings
from folio.logging import get_logger
from folio.models import Change, ChangeType, Position, Snapshot

logger = get_logger(__name__)


def _keyed(snapshot: Snapshot, side: str) -> dict[str, Position]:
    keyed = snapshot.by_key()
    expected = sum(1 for p in snapshot.all_positions() if p.key)
    if len(keyed) != expected:
        counts = Counter(p.key for p in snapshot.all_positions() if p.key)
        logger.warning(
            "duplicate_position_keys",
            snapshot=side,
            keys=sorted(k for k, n in counts.items() if n > 1),
        )
    return keyed


class SnapshotDiffer:
    """Compares two snapshots and classifies every difference.

    Args:
        settings: Percent and absolute thresholds for value changes.
    """

    def __init__(self, settings: SignificanceSettings | None = None) -> None:
        self._settings = settings or SignificanceSettings()

    def diff(self, old: Snapshot, new: Snapshot) -> list[Change]:
        """Return every change between ``old`` and ``new``, significance flagged.

        Order: opened (new-snapshot order), closed (old-snapshot order), then
        per common symbol a value_change followed by a quantity_change.
        """
        old_map = _keyed(old, "old")
        new_map = _keyed(new, "new")
        changes: list[Change] = []

        for key, position in new_map.items():
            if key not in old_map:
                changes.append(
                    Change(
                        ChangeType.OPENED,
                        key,
                        new_value=position.market_value,
                        new_quantity=position.quantity,
                        significant=True,
                    )
                )

        for key, position in old_map.items():
            if key not in new_map:
                changes.append(
                    Change(
                        ChangeType.CLOSED,
                        key,
                        old_value=position.market_value,
                        old_quantity=position.quantity,
                        significant=True,
                    )
                )

        for key, before in old_map.items():
            after = new_map.get(key)
            if after is None:
                continue

            if before.market_value != after.market_value:
                percent = None
                if before.market_value > 0:
                    percent = (
                        (after.market_value - before.market_value) / before.market_value * 100
                    )
                change = Change(
                    ChangeType.VALUE_CHANGE,
                    key,
                    old_value=before.market_value,
                    new_value=after.market_value,
                    old_quantity=before.quantity,
                    new_quantity=after.quantity,
                    percent_change=percent,
                )
                changes.append(replace(change, significant=self.is_significant(change)))

            if before.quantity != after.quantity:
                changes.append(
                    Change(
                        ChangeType.QUANTITY_CHANGE,
                        key,
                        old_value=before.market_value,
                        new_value=after.market_value,
                        old_quantity=before.quantity,
                        new_quantity=after.quantity,
                        significant=True,
                    )
                )

        logger.info(
            "snapshot_diffed",
            old_positions=len(old_map),
            new_positions=len(new_map),
            changes=len(changes),
        )
        return changes

    def is_significant(self, change: Change) -> bool:
        """Opened, closed and quantity changes always are; value changes
        when either the percent or the absolute move reaches its threshold.
        """
        if change.change_type is not ChangeType.VALUE_CHANGE:
            return True

        if change.percent_change is not None:
            if abs(change.percent_change) >= self._settings.percent_threshold:
                return True

        return abs(change.value_delta) >= self._settings.value_threshold

    def significant(self, changes: list[Change]) -> list[Change]:
        return [c for c in changes if c.significant]
