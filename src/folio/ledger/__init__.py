"""Append-only audit ledger."""

from folio.ledger.entries import change_entry, failure_entry, make_run_id, summary_entry
from folio.ledger.writer import LedgerWriter

__all__ = [
    "LedgerWriter",
    "change_entry",
    "failure_entry",
    "make_run_id",
    "summary_entry",
]
