"""Registry persistence layer.

SQLite database management and the typed store for token metadata and
cached prices.
"""

from folio.data.database import RegistryDatabase
from folio.data.store import RegistryStore

__all__ = ["RegistryDatabase", "RegistryStore"]
