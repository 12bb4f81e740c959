from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.orm import Session

from stockdesk.app.db.models.core_types import MovementType
from stockdesk.services.errors import StockError
from stockdesk.services.ledger import apply_movement

logger = logging.getLogger(__name__)

DEFAULT_ADJUSTMENT_REASON = "manual adjustment"


@dataclass(frozen=True)
class AdjustmentLine:
    product_id: int
    target: int
    variant_id: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class AdjustmentOutcome:
    product_id: int
    variant_id: int | None
    success: bool
    old_stock: int | None = None
    new_stock: int | None = None
    movement_id: int | None = None
    error: dict | None = None


@dataclass
class BulkAdjustmentResult:
    reference: str
    results: list[AdjustmentOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful


def new_adjustment_reference() -> str:
    return f"ADJ-{uuid.uuid4().hex[:12]}"


def apply_stock_adjustments(
    db: Session,
    lines: Iterable[AdjustmentLine],
    *,
    reference: str | None = None,
) -> BulkAdjustmentResult:
    """
    Set each line's target to its stock, one transaction per line.

    A failing line is recorded and the batch continues; lines that already
    match their target succeed without writing a movement.
    """
    result = BulkAdjustmentResult(reference=reference or new_adjustment_reference())

    for line in lines:
        try:
            applied = apply_movement(
                db,
                product_id=line.product_id,
                variant_id=line.variant_id,
                movement_type=MovementType.adjustment,
                quantity=line.target,
                reason=line.reason or DEFAULT_ADJUSTMENT_REASON,
                reference=result.reference,
            )
        except StockError as exc:
            logger.error(
                "Adjustment %s: product %s (variant %s) failed: %s",
                result.reference,
                line.product_id,
                line.variant_id,
                exc.message,
            )
            result.results.append(
                AdjustmentOutcome(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    success=False,
                    error=exc.as_dict(),
                )
            )
            continue

        result.results.append(
            AdjustmentOutcome(
                product_id=line.product_id,
                variant_id=line.variant_id,
                success=True,
                old_stock=applied.old_stock,
                new_stock=applied.new_stock,
                movement_id=applied.movement.id if applied.movement is not None else None,
            )
        )

    logger.info(
        "Adjustment %s done: %s lines, %s ok, %s failed",
        result.reference,
        result.total,
        result.successful,
        result.failed,
    )
    return result
