from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from stockdesk.app.db.models.core_types import MovementType, SyncAction
from stockdesk.app.db.models.models_v1 import Product, ProductVariant, StockMovement
from stockdesk.services.catalog import (
    INITIAL_STOCK_REASON,
    VariantDraft,
    add_variant,
    create_product,
    validate_options,
)
from stockdesk.services.errors import DuplicateSku, InvalidInput, NotFound, TransactionFailure


def _movements(db, product_id):
    return (
        db.execute(select(StockMovement).where(StockMovement.product_id == product_id).order_by(StockMovement.id))
        .scalars()
        .all()
    )


def test_create_product_books_initial_stock(db_session):
    p = create_product(db_session, name="Mug", sku="MUG-1", price=Decimal("12.50"), manual_stock=7)

    assert p.manual_stock == 7
    (mv,) = _movements(db_session, p.id)
    assert mv.movement_type == MovementType.inbound
    assert mv.quantity == 7
    assert mv.reason == INITIAL_STOCK_REASON


def test_create_product_with_variants(db_session):
    p = create_product(
        db_session,
        name="Shirt",
        price=Decimal("25"),
        variants=[
            VariantDraft(name="S", sku="SH-S", stock=3, options={"size": "S"}),
            VariantDraft(name="M", sku="SH-M", stock=0, options={"size": "M"}),
        ],
    )

    assert p.manual_stock == 0
    assert [v.stock for v in p.variants] == [3, 0]
    assert p.variants[0].options == {"size": "S"}
    # no movement for a variant starting at zero
    assert len(_movements(db_session, p.id)) == 1


def test_create_product_rejects_manual_stock_with_variants(db_session):
    with pytest.raises(InvalidInput):
        create_product(db_session, name="Shirt", price=Decimal("1"), manual_stock=4, variants=[VariantDraft(name="S")])

    assert db_session.execute(select(Product)).first() is None


def test_create_product_duplicate_sku(db_session, make_product):
    make_product("Mug", sku="MUG-1")

    with pytest.raises(DuplicateSku):
        create_product(db_session, name="Other mug", sku="MUG-1", price=Decimal("1"))

    with pytest.raises(DuplicateSku):
        create_product(
            db_session,
            name="Shirt",
            sku="SH",
            price=Decimal("1"),
            variants=[VariantDraft(name="S", sku="SH")],
        )


def test_add_first_variant_reconciles_product(db_session, make_product):
    p = make_product("Cap", manual_stock=10)

    created = add_variant(db_session, p.id, VariantDraft(name="Red", stock=4, options={"color": "red"}))

    assert created.variant.stock == 4
    assert created.sync.updated == 1
    assert created.sync.details[0].action == SyncAction.updated

    product = db_session.get(Product, p.id)
    assert product.manual_stock == 0

    rows = _movements(db_session, p.id)
    assert [(r.movement_type, r.quantity) for r in rows] == [
        (MovementType.inbound, 4),
        (MovementType.adjustment, 10),
    ]
    assert rows[1].reference == created.sync.run_id


def test_add_variant_rolls_back_when_reconciliation_fails(db_session, make_product, monkeypatch):
    p = make_product("Cap", manual_stock=10)

    def _fail(db, **kwargs):
        raise OperationalError("INSERT INTO stock_movements", {}, Exception("disk I/O error"))

    monkeypatch.setattr("stockdesk.services.reconcile.stage_movement", _fail)

    with pytest.raises(TransactionFailure):
        add_variant(db_session, p.id, VariantDraft(name="Red", stock=4))

    # neither the variant nor its initial stock survived
    assert db_session.execute(select(ProductVariant)).first() is None
    assert db_session.get(Product, p.id).manual_stock == 10
    assert _movements(db_session, p.id) == []


def test_add_variant_to_consistent_product_skips_sync(db_session, make_product):
    p = make_product("Shirt", variants=[1])

    created = add_variant(db_session, p.id, VariantDraft(name="XL"))

    assert created.sync.skipped == 1
    assert _movements(db_session, p.id) == []


def test_add_variant_unknown_product(db_session):
    with pytest.raises(NotFound):
        add_variant(db_session, 404, VariantDraft(name="S"))


@pytest.mark.parametrize(
    "options",
    [
        {"": "x"},
        {"size": 42},
        {"k" * 65: "x"},
        {"size": "x" * 256},
        {f"opt{i}": "x" for i in range(21)},
        ["size", "S"],
    ],
)
def test_validate_options_rejects(options):
    with pytest.raises(InvalidInput):
        validate_options(options)


def test_validate_options_accepts_flat_mapping():
    assert validate_options({"size": "M", "color": "black"}) == {"size": "M", "color": "black"}
    assert validate_options(None) == {}
