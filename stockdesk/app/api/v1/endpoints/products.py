from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stockdesk.app.api.deps import get_db
from stockdesk.app.db.models.models_v1 import Product, ProductVariant
from stockdesk.app.schemas.product import ProductRead, VariantRead
from stockdesk.app.schemas.sync import SyncResultRead
from stockdesk.services.catalog import VariantDraft, add_variant, create_product, get_product, list_products
from stockdesk.services.inventory import product_stock_figures, variant_stock_figures

router = APIRouter(prefix="/products")


class VariantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    sku: str | None = Field(default=None, min_length=1, max_length=64)
    stock: int = Field(default=0, ge=0)
    price: Decimal | None = Field(default=None, ge=0)
    options: dict[str, str] = Field(default_factory=dict)

    def to_draft(self) -> VariantDraft:
        return VariantDraft(
            name=self.name,
            sku=self.sku,
            stock=self.stock,
            price=self.price,
            options=self.options,
        )


class ProductCreate(BaseModel):
    sku: str | None = Field(default=None, min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    price: Decimal = Field(ge=0)
    cost: Decimal | None = Field(default=None, ge=0)
    manual_stock: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=5, ge=0)
    track_stock: bool = True
    is_active: bool = True
    variants: list[VariantCreate] = Field(default_factory=list)


class VariantAdded(BaseModel):
    variant: VariantRead
    sync: SyncResultRead


def _variant_out(v: ProductVariant, p: Product) -> VariantRead:
    figures = variant_stock_figures(v, p)
    return VariantRead(
        id=v.id,
        product_id=v.product_id,
        name=v.name,
        sku=v.sku,
        stock=v.stock,
        price=v.price,
        options=v.options,
        stock_value=figures.stock_value,
        status=figures.status,
    )


def _product_out(p: Product) -> ProductRead:
    figures = product_stock_figures(p)
    return ProductRead(
        id=p.id,
        sku=p.sku,
        name=p.name,
        price=p.price,
        cost=p.cost,
        manual_stock=p.manual_stock,
        low_stock_threshold=p.low_stock_threshold,
        track_stock=p.track_stock,
        is_active=p.is_active,
        created_at=p.created_at,
        updated_at=p.updated_at,
        total_stock=figures.total_stock,
        status=figures.status,
        variants=[_variant_out(v, p) for v in p.variants],
    )


@router.get("", response_model=list[ProductRead])
def get_products(active_only: bool = False, db: Session = Depends(get_db)):
    return [_product_out(p) for p in list_products(db, active_only=active_only)]


@router.get("/{product_id}", response_model=ProductRead)
def get_one_product(product_id: int, db: Session = Depends(get_db)):
    return _product_out(get_product(db, product_id))


@router.post("", response_model=ProductRead, status_code=201)
def post_product(payload: ProductCreate, db: Session = Depends(get_db)):
    p = create_product(
        db,
        name=payload.name,
        price=payload.price,
        sku=payload.sku,
        cost=payload.cost,
        manual_stock=payload.manual_stock,
        low_stock_threshold=payload.low_stock_threshold,
        track_stock=payload.track_stock,
        is_active=payload.is_active,
        variants=[v.to_draft() for v in payload.variants],
    )
    return _product_out(p)


@router.post("/{product_id}/variants", response_model=VariantAdded, status_code=201)
def post_variant(product_id: int, payload: VariantCreate, db: Session = Depends(get_db)):
    created = add_variant(db, product_id, payload.to_draft())
    return VariantAdded(
        variant=_variant_out(created.variant, created.variant.product),
        sync=SyncResultRead.model_validate(created.sync),
    )
