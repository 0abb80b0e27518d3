"""FastAPI application factory for the read-only status API."""

from fastapi import FastAPI

from folio.api import routes
from folio.config import AppSettings
from folio.ledger.writer import LedgerWriter
from folio.portfolio.snapshot_store import SnapshotStore


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Create the API app. Components are stored on ``app.state`` for the routes."""
    settings = settings or AppSettings()

    app = FastAPI(title="Folio Reconciler", docs_url="/api/docs")
    app.state.settings = settings
    app.state.snapshot_store = SnapshotStore(
        settings.storage.positions_file, settings.storage.history_dir
    )
    app.state.ledger = LedgerWriter(settings.storage.ledger_file)
    app.state.registry_db_path = settings.discovery.registry_db_path

    app.include_router(routes.router, prefix="/api")
    return app
