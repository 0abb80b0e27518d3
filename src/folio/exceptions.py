"""Custom exceptions for the portfolio reconciliation core.

Only fatal and data-shape failures are exceptions. Recoverable lookup
failures (token metadata, prices) are reported as Resolution values
instead, see folio.models.
"""


class FolioError(Exception):
    """Base exception for all reconciliation errors."""


class SourceUnavailableError(FolioError):
    """Raised when the banking or blockchain collaborator cannot be reached.

    Fatal for the current fetch cycle: the previous snapshot stays authoritative.
    """

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source} unavailable: {reason}")
        self.source = source
        self.reason = reason


class PersistenceError(FolioError):
    """Raised when the snapshot, ledger or registry cannot be read or written."""


class DataShapeError(FolioError):
    """Raised when a raw record is missing a field required to build a position."""
