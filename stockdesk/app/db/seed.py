from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from stockdesk.app.db.session import SessionLocal
from stockdesk.app.db.models.models_v1 import Product
from stockdesk.services.catalog import VariantDraft, create_product


DEMO_CATALOG = [
    dict(sku="MUG-001", name="Enamel mug", price=Decimal("12.50"), cost=Decimal("4.10"), manual_stock=40),
    dict(sku="CAP-001", name="Canvas cap", price=Decimal("19.00"), manual_stock=3, low_stock_threshold=5),
    dict(
        sku="TEE-001",
        name="Logo t-shirt",
        price=Decimal("25.00"),
        cost=Decimal("9.00"),
        variants=[
            VariantDraft(name="S", sku="TEE-001-S", stock=6, options={"size": "S"}),
            VariantDraft(name="M", sku="TEE-001-M", stock=12, options={"size": "M"}),
            VariantDraft(name="L", sku="TEE-001-L", stock=0, options={"size": "L"}),
        ],
    ),
    dict(sku="GIFT-001", name="Gift card", price=Decimal("50.00"), track_stock=False),
]


def run_seed():
    db = SessionLocal()
    try:
        created = 0
        for entry in DEMO_CATALOG:
            if db.scalar(select(Product.id).where(Product.sku == entry["sku"])):
                continue
            create_product(db, **entry)
            created += 1

        print(f"SEED OK: {created} products created, {len(DEMO_CATALOG) - created} already present")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
