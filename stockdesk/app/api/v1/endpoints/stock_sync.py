from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockdesk.app.api.deps import get_db
from stockdesk.app.schemas.sync import ConsistencyReportRead, SyncResultRead
from stockdesk.services.consistency import analyze_inconsistencies
from stockdesk.services.reconcile import sync_all, sync_single

router = APIRouter(prefix="/stock-sync")


@router.get("/analysis", response_model=ConsistencyReportRead)
def get_analysis(db: Session = Depends(get_db)):
    """Read-only scan; may be stale by the time a sync runs."""
    return ConsistencyReportRead.model_validate(analyze_inconsistencies(db))


@router.post("", response_model=SyncResultRead)
def run_sync_all(db: Session = Depends(get_db)):
    return SyncResultRead.model_validate(sync_all(db))


@router.post("/{product_id}", response_model=SyncResultRead)
def run_sync_single(product_id: int, db: Session = Depends(get_db)):
    return SyncResultRead.model_validate(sync_single(db, product_id))
