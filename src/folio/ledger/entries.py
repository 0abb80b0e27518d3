"""Ledger entry construction for one fetch cycle.

Run entries are identified ``fetch-YYYY-MM-DD-HH-MM-SS``; per-symbol
entries append ``-{symbol}`` to the run id, and quantity changes a further
``-quantity`` so they never share an id with a value change of the same symbol.
"""

from datetime import datetime

from folio.models import Change, ChangeType, LedgerEntry, Snapshot

PHASE_DATA_COLLECTION = "data_collection"
PHASE_POSITION_CHANGE = "position_change"
PHASE_PRICE_UPDATE = "price_update"

# change type -> (phase, status, ledger change_type)
_CHANGE_VOCABULARY: dict[ChangeType, tuple[str, str, str]] = {
    ChangeType.OPENED: (PHASE_POSITION_CHANGE, "opened", "new_position"),
    ChangeType.CLOSED: (PHASE_POSITION_CHANGE, "closed", "closed_position"),
    ChangeType.VALUE_CHANGE: (PHASE_PRICE_UPDATE, "significant", "value_change"),
    ChangeType.QUANTITY_CHANGE: (PHASE_POSITION_CHANGE, "quantity_changed", "quantity_change"),
}


def make_run_id(now: datetime) -> str:
    return f"fetch-{now:%Y-%m-%d-%H-%M-%S}"


def _entry_id(run_id: str, change: Change) -> str:
    if change.change_type is ChangeType.QUANTITY_CHANGE:
        return f"{run_id}-{change.symbol}-quantity"
    return f"{run_id}-{change.symbol}"


def change_entry(change: Change, run_id: str, timestamp: str) -> LedgerEntry:
    """Audit entry for one significant change."""
    phase, status, change_type = _CHANGE_VOCABULARY[change.change_type]

    if change.change_type is ChangeType.CLOSED:
        value, shares = change.old_value, change.old_quantity
    elif change.change_type is ChangeType.VALUE_CHANGE:
        value, shares = change.new_value, None
    else:
        value, shares = change.new_value, change.new_quantity

    return LedgerEntry(
        id=_entry_id(run_id, change),
        timestamp=timestamp,
        phase=phase,
        status=status,
        notes=change.note(),
        symbol=change.symbol,
        change_type=change_type,
        value=value,
        shares=shares,
    )


def summary_entry(
    run_id: str,
    timestamp: str,
    previous: Snapshot,
    current: Snapshot,
    changes: list[Change],
    significant: list[Change],
    duration: float = 0.0,
) -> LedgerEntry:
    """Run summary for a completed cycle."""
    positions = current.position_count
    total = current.total_net_worth
    summary = {
        "positionsAnalyzed": positions,
        "recommendationsGenerated": 0,
        "totalPortfolioValue": total,
        "changeFromLastRun": total - previous.total_net_worth,
        "newPositions": sum(1 for c in changes if c.change_type is ChangeType.OPENED),
        "closedPositions": sum(1 for c in changes if c.change_type is ChangeType.CLOSED),
        "significantMovements": len(significant),
    }
    return LedgerEntry(
        id=run_id,
        timestamp=timestamp,
        phase=PHASE_DATA_COLLECTION,
        status="completed",
        duration=duration,
        summary=summary,
        notes=f"Fetched {positions} positions, portfolio value: {total:,.2f}",
    )


def failure_entry(run_id: str, timestamp: str, reason: str, duration: float = 0.0) -> LedgerEntry:
    """Entry recording an aborted cycle. Never claims success."""
    return LedgerEntry(
        id=run_id,
        timestamp=timestamp,
        phase=PHASE_DATA_COLLECTION,
        status="failed",
        duration=duration,
        errors=[reason],
        notes=reason,
    )
