from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from stockdesk.app.db.base import utcnow
from stockdesk.app.db.models.core_types import MovementType, OverdrawPolicy
from stockdesk.app.db.models.models_v1 import Product, ProductVariant, StockMovement
from stockdesk.services import ledger
from stockdesk.services.errors import InsufficientStock, InvalidInput, NotFound, TransactionFailure
from stockdesk.services.ledger import (
    apply_movement,
    compute_new_quantity,
    list_movements,
    recent_movements,
)


def _movements(db, product_id):
    return db.execute(
        select(StockMovement).where(StockMovement.product_id == product_id).order_by(StockMovement.id)
    ).scalars().all()


def test_inbound_adds_to_manual_stock(db_session, make_product):
    p = make_product(manual_stock=10)

    result = apply_movement(db_session, product_id=p.id, movement_type="IN", quantity=5)

    assert result.old_stock == 10
    assert result.new_stock == 15
    assert db_session.get(Product, p.id).manual_stock == 15

    rows = _movements(db_session, p.id)
    assert len(rows) == 1
    assert rows[0].movement_type == MovementType.inbound
    assert rows[0].quantity == 5
    assert (rows[0].old_value, rows[0].new_value) == (10, 15)


def test_outbound_clamps_at_zero(db_session, make_product):
    p = make_product(variants=[2])
    variant = db_session.execute(select(ProductVariant).where(ProductVariant.product_id == p.id)).scalar_one()

    result = apply_movement(
        db_session,
        product_id=p.id,
        variant_id=variant.id,
        movement_type=MovementType.outbound,
        quantity=5,
        overdraw_policy=OverdrawPolicy.clamp,
    )

    assert result.new_stock == 0
    assert db_session.get(ProductVariant, variant.id).stock == 0

    mv = _movements(db_session, p.id)[0]
    assert mv.product_variant_id == variant.id
    assert mv.quantity == 5
    assert (mv.old_value, mv.new_value) == (2, 0)


def test_outbound_reject_policy_writes_nothing(db_session, make_product):
    p = make_product(manual_stock=3)

    with pytest.raises(InsufficientStock) as exc_info:
        apply_movement(db_session, product_id=p.id, movement_type="OUT", quantity=4, overdraw_policy="REJECT")

    assert exc_info.value.data == {"available": 3, "requested": 4}
    assert isinstance(exc_info.value, InvalidInput)
    assert db_session.get(Product, p.id).manual_stock == 3
    assert _movements(db_session, p.id) == []


def test_adjustment_sets_target(db_session, make_product):
    p = make_product(manual_stock=10)

    result = apply_movement(db_session, product_id=p.id, movement_type="ADJUSTMENT", quantity=4, reason="count")

    assert result.new_stock == 4
    mv = result.movement
    assert mv.quantity == 6
    assert (mv.old_value, mv.new_value) == (10, 4)
    assert mv.reason == "count"


def test_adjustment_to_current_value_writes_nothing(db_session, make_product):
    p = make_product(manual_stock=7)

    result = apply_movement(db_session, product_id=p.id, movement_type="ADJUSTMENT", quantity=7)

    assert result.movement is None
    assert result.new_stock == 7
    assert _movements(db_session, p.id) == []


def test_product_level_movement_rejected_when_variants_exist(db_session, make_product):
    p = make_product(manual_stock=0, variants=[3])

    with pytest.raises(InvalidInput):
        apply_movement(db_session, product_id=p.id, movement_type="IN", quantity=1)

    assert _movements(db_session, p.id) == []


def test_variant_must_belong_to_product(db_session, make_product):
    p1 = make_product("One", variants=[1])
    p2 = make_product("Two", variants=[1])
    foreign = db_session.execute(select(ProductVariant).where(ProductVariant.product_id == p2.id)).scalar_one()

    with pytest.raises(NotFound):
        apply_movement(db_session, product_id=p1.id, variant_id=foreign.id, movement_type="IN", quantity=1)


def test_unknown_product(db_session):
    with pytest.raises(NotFound) as exc_info:
        apply_movement(db_session, product_id=999, movement_type="IN", quantity=1)

    assert exc_info.value.as_dict()["code"] == "NOT_FOUND"


@pytest.mark.parametrize(
    "movement_type, quantity",
    [
        ("IN", 0),
        ("OUT", -1),
        ("ADJUSTMENT", -3),
        ("IN", True),
        ("IN", 2.5),
        ("TRANSFER", 1),
    ],
)
def test_invalid_input_rejected_before_write(db_session, make_product, movement_type, quantity):
    p = make_product(manual_stock=5)

    with pytest.raises(InvalidInput):
        apply_movement(db_session, product_id=p.id, movement_type=movement_type, quantity=quantity)

    assert db_session.get(Product, p.id).manual_stock == 5
    assert _movements(db_session, p.id) == []


def test_reason_too_long(db_session, make_product):
    p = make_product(manual_stock=5)

    with pytest.raises(InvalidInput):
        apply_movement(db_session, product_id=p.id, movement_type="IN", quantity=1, reason="x" * 256)


def test_stock_never_negative_over_a_sequence(db_session, make_product):
    p = make_product(manual_stock=1)

    for movement_type, quantity in [("OUT", 3), ("IN", 2), ("OUT", 10), ("ADJUSTMENT", 0), ("OUT", 1)]:
        result = apply_movement(db_session, product_id=p.id, movement_type=movement_type, quantity=quantity)
        assert result.new_stock >= 0

    for mv in _movements(db_session, p.id):
        assert mv.new_value >= 0
        assert mv.quantity >= 0


def test_compute_new_quantity():
    assert compute_new_quantity(MovementType.inbound, 2, 3) == (5, 3)
    assert compute_new_quantity(MovementType.outbound, 2, 5) == (0, 5)
    assert compute_new_quantity(MovementType.adjustment, 10, 3) == (3, 7)
    assert compute_new_quantity(MovementType.adjustment, 3, 10) == (10, 7)


def test_movements_are_append_only(db_session, make_product):
    p = make_product(manual_stock=1)
    mv = apply_movement(db_session, product_id=p.id, movement_type="IN", quantity=1).movement

    mv.reason = "rewritten"
    with pytest.raises(ValueError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(db_session.get(StockMovement, mv.id))
    with pytest.raises(ValueError):
        db_session.flush()
    db_session.rollback()

    assert len(_movements(db_session, p.id)) == 1


def test_list_movements_paginates_newest_first(db_session, make_product):
    p = make_product("Widget", manual_stock=0, sku="W-1")
    for _ in range(5):
        apply_movement(db_session, product_id=p.id, movement_type="IN", quantity=1)

    page = list_movements(db_session, page=1, page_size=2)

    assert page.pagination.total_count == 5
    assert page.pagination.total_pages == 3
    assert [item.new_value for item in page.items] == [5, 4]
    assert page.items[0].product_name == "Widget"
    assert page.items[0].product_sku == "W-1"
    assert page.items[0].difference == 1

    last = list_movements(db_session, page=3, page_size=2)
    assert [item.new_value for item in last.items] == [1]


def test_list_movements_filters(db_session, make_product):
    p = make_product("A", manual_stock=10)
    other = make_product("B", variants=[4])
    variant = db_session.execute(select(ProductVariant).where(ProductVariant.product_id == other.id)).scalar_one()

    apply_movement(db_session, product_id=p.id, movement_type="IN", quantity=1)
    apply_movement(db_session, product_id=p.id, movement_type="OUT", quantity=2)
    apply_movement(db_session, product_id=other.id, variant_id=variant.id, movement_type="OUT", quantity=1)

    assert list_movements(db_session, movement_type="OUT").pagination.total_count == 2
    assert list_movements(db_session, movement_type="all").pagination.total_count == 3
    assert list_movements(db_session, product_id=p.id).pagination.total_count == 2

    variant_items = list_movements(db_session, product_id=other.id).items
    assert variant_items[0].product_variant_name == "B #1"

    future = utcnow() + timedelta(days=1)
    assert list_movements(db_session, start=future).pagination.total_count == 0
    assert list_movements(db_session, end=future).pagination.total_count == 3


def test_list_movements_rejects_bad_paging(db_session):
    now = utcnow()
    with pytest.raises(InvalidInput):
        list_movements(db_session, page=0)
    with pytest.raises(InvalidInput):
        list_movements(db_session, page_size=10_000)
    with pytest.raises(InvalidInput):
        list_movements(db_session, start=now, end=now - timedelta(hours=1))
    with pytest.raises(InvalidInput):
        list_movements(db_session, movement_type="SIDEWAYS")


def test_recent_movements_limit(db_session, make_product):
    p = make_product(manual_stock=0)
    for _ in range(4):
        apply_movement(db_session, product_id=p.id, movement_type="IN", quantity=2)

    recent = recent_movements(db_session, 3)

    assert [m.new_value for m in recent] == [8, 6, 4]


def test_variant_write_locks_only_the_variant_row(db_session, make_product, monkeypatch):
    p = make_product("Shirt", variants=[5, 5])
    v1, v2 = db_session.execute(
        select(ProductVariant).where(ProductVariant.product_id == p.id).order_by(ProductVariant.id)
    ).scalars().all()

    locked = []
    real_lock = ledger.lock_product

    def _spy(db, product_id):
        locked.append(product_id)
        return real_lock(db, product_id)

    monkeypatch.setattr(ledger, "lock_product", _spy)

    apply_movement(db_session, product_id=p.id, variant_id=v1.id, movement_type="OUT", quantity=1)
    apply_movement(db_session, product_id=p.id, variant_id=v2.id, movement_type="IN", quantity=1)
    assert locked == []

    apply_movement(db_session, product_id=p.id, movement_type="ADJUSTMENT", quantity=0)
    assert locked == [p.id]

    assert db_session.get(ProductVariant, v1.id).stock == 4
    assert db_session.get(ProductVariant, v2.id).stock == 6


def test_store_failure_rolls_back_and_raises_transaction_failure(db_session, make_product, monkeypatch):
    p = make_product(manual_stock=5)

    def _fail_flush(*args, **kwargs):
        raise OperationalError("INSERT INTO stock_movements", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "flush", _fail_flush)

    with pytest.raises(TransactionFailure) as exc_info:
        apply_movement(db_session, product_id=p.id, movement_type="OUT", quantity=2)

    monkeypatch.undo()
    assert isinstance(exc_info.value.__cause__, OperationalError)
    assert exc_info.value.as_dict()["code"] == "TRANSACTION_FAILURE"
    assert db_session.get(Product, p.id).manual_stock == 5
    assert _movements(db_session, p.id) == []
