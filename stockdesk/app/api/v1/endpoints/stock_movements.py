from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stockdesk.app.api.deps import get_db
from stockdesk.app.db.models.core_types import MovementType
from stockdesk.app.schemas.movement import BulkAdjustmentRead, MovementApplied, StockMovementPage
from stockdesk.services.adjustments import AdjustmentLine, apply_stock_adjustments
from stockdesk.services.ledger import REASON_MAX_LENGTH, REFERENCE_MAX_LENGTH, apply_movement, list_movements

router = APIRouter(prefix="/stock-movements")


# ---------- Schemas ----------
class MovementCreate(BaseModel):
    product_id: int
    variant_id: int | None = None
    movement_type: MovementType
    # IN/OUT: amount moved; ADJUSTMENT: target quantity
    quantity: int
    reason: str | None = Field(default=None, max_length=REASON_MAX_LENGTH)
    reference: str | None = Field(default=None, max_length=REFERENCE_MAX_LENGTH)


class AdjustmentItem(BaseModel):
    product_id: int
    variant_id: int | None = None
    target: int = Field(ge=0)
    reason: str | None = Field(default=None, max_length=REASON_MAX_LENGTH)


class AdjustmentBatch(BaseModel):
    items: list[AdjustmentItem] = Field(min_length=1)


# ---------- Endpoints ----------
@router.post("", response_model=MovementApplied, status_code=201)
def create_movement(payload: MovementCreate, db: Session = Depends(get_db)):
    result = apply_movement(
        db,
        product_id=payload.product_id,
        variant_id=payload.variant_id,
        movement_type=payload.movement_type,
        quantity=payload.quantity,
        reason=payload.reason,
        reference=payload.reference,
    )
    return MovementApplied(
        movement_id=result.movement.id if result.movement is not None else None,
        product_id=payload.product_id,
        product_variant_id=payload.variant_id,
        old_stock=result.old_stock,
        new_stock=result.new_stock,
    )


@router.get("", response_model=StockMovementPage)
def get_movements(
    product_id: int | None = None,
    movement_type: str | None = Query(default=None, alias="type"),
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    page_size: int | None = None,
    db: Session = Depends(get_db),
):
    """
    Movement history, newest first.
    - ``type=all`` or no type returns every movement type
    - movements of deleted products keep a placeholder name
    """
    result = list_movements(
        db,
        product_id=product_id,
        movement_type=movement_type,
        start=start,
        end=end,
        page=page,
        page_size=page_size,
    )
    return StockMovementPage.model_validate(result)


@router.post("/adjustments", response_model=BulkAdjustmentRead)
def bulk_adjust(payload: AdjustmentBatch, db: Session = Depends(get_db)):
    lines = [
        AdjustmentLine(
            product_id=item.product_id,
            variant_id=item.variant_id,
            target=item.target,
            reason=item.reason,
        )
        for item in payload.items
    ]
    return BulkAdjustmentRead.model_validate(apply_stock_adjustments(db, lines))
