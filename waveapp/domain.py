"""Immutable snapshots of persisted inventory state.

The service layer reads SQLAlchemy rows and hands these objects to the
inventory context, so callers never hold live ORM instances. An item's stock
lives either on the item itself (``SimpleStock``) or on its variants
(``VariantStock``); the two are mutually exclusive.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class AdjustmentHistory:
    date: datetime
    change: int
    reason: str
    new_stock_level: int

    def to_dict(self) -> dict:
        return {
            "date": _iso(self.date),
            "change": self.change,
            "reason": self.reason,
            "newStockLevel": self.new_stock_level,
        }


@dataclass(frozen=True)
class ChannelPrice:
    channel: str
    price: float

    def to_dict(self) -> dict:
        return {"channel": self.channel, "price": self.price}


@dataclass(frozen=True)
class InventoryItemVariant:
    id: str
    name: str
    stock: int
    price: float
    sku: Optional[str] = None
    cost_price: Optional[float] = None
    history: tuple[AdjustmentHistory, ...] = ()
    channel_prices: tuple[ChannelPrice, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "stock": self.stock,
            "price": self.price,
            "costPrice": self.cost_price,
            "history": [h.to_dict() for h in self.history],
            "channelPrices": [c.to_dict() for c in self.channel_prices],
        }


@dataclass(frozen=True)
class SimpleStock:
    stock: int
    price: float
    cost_price: Optional[float] = None
    history: tuple[AdjustmentHistory, ...] = ()
    channel_prices: tuple[ChannelPrice, ...] = ()

    kind = "simple"


@dataclass(frozen=True)
class VariantStock:
    variants: tuple[InventoryItemVariant, ...]

    kind = "variants"


Stocking = Union[SimpleStock, VariantStock]


@dataclass(frozen=True)
class InventoryItem:
    id: str
    name: str
    category: str
    stocking: Stocking
    sku: Optional[str] = None
    image_url: Optional[str] = None
    size: Optional[str] = None
    is_archived: bool = False

    @property
    def has_variants(self) -> bool:
        return isinstance(self.stocking, VariantStock)

    @property
    def variants(self) -> tuple[InventoryItemVariant, ...]:
        if isinstance(self.stocking, VariantStock):
            return self.stocking.variants
        return ()

    @property
    def total_stock(self) -> int:
        if isinstance(self.stocking, VariantStock):
            return sum(v.stock for v in self.stocking.variants)
        return self.stocking.stock

    def find_variant(self, variant_id: str) -> Optional[InventoryItemVariant]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def history_for(self, entity_id: str) -> tuple[AdjustmentHistory, ...]:
        if isinstance(self.stocking, SimpleStock):
            return self.stocking.history if entity_id == self.id else ()
        variant = self.find_variant(entity_id)
        return variant.history if variant else ()

    def to_dict(self) -> dict:
        payload = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "sku": self.sku,
            "imageUrl": self.image_url,
            "size": self.size,
            "isArchived": self.is_archived,
            "kind": self.stocking.kind,
        }
        if isinstance(self.stocking, VariantStock):
            payload["variants"] = [v.to_dict() for v in self.stocking.variants]
        else:
            payload.update(
                stock=self.stocking.stock,
                price=self.stocking.price,
                costPrice=self.stocking.cost_price,
                history=[h.to_dict() for h in self.stocking.history],
                channelPrices=[c.to_dict() for c in self.stocking.channel_prices],
            )
        return payload


@dataclass(frozen=True)
class Accessory:
    id: str
    name: str
    stock: int
    sku: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    cost_price: Optional[float] = None
    history: tuple[AdjustmentHistory, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "stock": self.stock,
            "price": self.price,
            "costPrice": self.cost_price,
            "history": [h.to_dict() for h in self.history],
        }


@dataclass(frozen=True)
class Sale:
    id: int
    product_id: str
    channel: str
    quantity: int
    price_at_sale: float
    sale_date: datetime
    product_name: str
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    sku: Optional[str] = None
    cogs_at_sale: float = 0.0
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    reseller_name: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    @property
    def revenue(self) -> float:
        return self.price_at_sale * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transactionId": self.transaction_id,
            "paymentMethod": self.payment_method,
            "resellerName": self.reseller_name,
            "productId": self.product_id,
            "variantId": self.variant_id,
            "channel": self.channel,
            "quantity": self.quantity,
            "priceAtSale": self.price_at_sale,
            "cogsAtSale": self.cogs_at_sale,
            "saleDate": _iso(self.sale_date),
            "productName": self.product_name,
            "variantName": self.variant_name,
            "sku": self.sku,
            "cancelledAt": _iso(self.cancelled_at),
        }


@dataclass(frozen=True)
class Reseller:
    id: int
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "phone": self.phone, "address": self.address}


@dataclass(frozen=True)
class ShippingReceipt:
    id: int
    awb: str
    channel: str
    date: datetime
    status: str

    @property
    def receipt_number(self) -> str:
        return self.awb

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "awb": self.awb,
            "receiptNumber": self.awb,
            "channel": self.channel,
            "date": _iso(self.date),
            "status": self.status,
        }


@dataclass(frozen=True)
class ManualJournalEntry:
    id: int
    date: datetime
    description: str
    debit_account: str
    credit_account: str
    amount: float
    type: str = "manual"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": _iso(self.date),
            "description": self.description,
            "debitAccount": self.debit_account,
            "creditAccount": self.credit_account,
            "amount": self.amount,
            "type": self.type,
        }


@dataclass(frozen=True)
class InventoryData:
    items: list[InventoryItem] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
