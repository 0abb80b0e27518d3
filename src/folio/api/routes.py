"""Read-only JSON endpoints over the persisted snapshot, ledger and registry."""

from dataclasses import asdict
from pathlib import Path

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from folio.data.database import RegistryDatabase
from folio.data.store import RegistryStore
from folio.exceptions import PersistenceError
from folio.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _persistence_error(error: PersistenceError) -> JSONResponse:
    logger.error("api_persistence_error", error=str(error))
    return JSONResponse({"error": str(error)}, status_code=503)


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    """Headline figures of the last committed snapshot."""
    try:
        snapshot = await request.app.state.snapshot_store.load_previous()
    except PersistenceError as e:
        return _persistence_error(e)

    return JSONResponse({
        "last_updated": snapshot.last_updated or None,
        "total_net_worth": str(snapshot.total_net_worth),
        "position_count": snapshot.position_count,
        "categories": {cat: len(items) for cat, items in snapshot.positions.items()},
    })


@router.get("/snapshot")
async def get_snapshot(request: Request) -> JSONResponse:
    try:
        snapshot = await request.app.state.snapshot_store.load_previous()
    except PersistenceError as e:
        return _persistence_error(e)
    return JSONResponse(snapshot.to_dict())


@router.get("/ledger")
async def get_ledger(request: Request, limit: int = Query(50, ge=1, le=1000)) -> JSONResponse:
    """Most recent ledger entries, newest last."""
    try:
        entries = await request.app.state.ledger.read()
    except PersistenceError as e:
        return _persistence_error(e)
    return JSONResponse({
        "total": len(entries),
        "entries": [e.to_dict() for e in entries[-limit:]],
    })


@router.get("/tokens")
async def get_tokens(request: Request, chain: str | None = None) -> JSONResponse:
    """Token registry contents, optionally for one chain."""
    db_path = request.app.state.registry_db_path
    if not Path(db_path).exists():
        return JSONResponse({"tokens": []})

    try:
        async with RegistryDatabase(db_path) as database:
            tokens = await RegistryStore(database).get_tokens(chain)
    except PersistenceError as e:
        return _persistence_error(e)
    return JSONResponse({"tokens": [asdict(t) for t in tokens]})
