"""Banking aggregation collaborator -- raw account and instrument records."""

from folio.banking.client import BankingClient
from folio.banking.powens_client import PowensClient
from folio.banking.records import RawAccount, RawInstrument, parse_account, parse_instrument

__all__ = [
    "BankingClient",
    "PowensClient",
    "RawAccount",
    "RawInstrument",
    "parse_account",
    "parse_instrument",
]
