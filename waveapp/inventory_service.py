"""Persistence service for catalog, stock, sales, receipts and settings.

Every public function is one unit of work: it either commits all of its
writes or rolls the session back and re-raises. Stock never changes without
a matching ``StockHistory`` row written in the same commit.
"""
import json
import logging
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import replace
from datetime import date as date_type, datetime, time

from sqlalchemy import or_, update
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import IntegrityError

from waveapp import db, domain
from waveapp.errors import (
    DuplicateError,
    InsufficientStockError,
    NotFoundError,
    SaleAlreadyCancelledError,
    ValidationError,
)
from waveapp.models import (
    RECEIPT_STATUS_PENDING,
    Accessory,
    ChannelPrice,
    ManualJournalEntry,
    Product,
    Reseller,
    Sale,
    Setting,
    ShippingReceipt,
    StockHistory,
    Variant,
)
from waveapp.time_utils import day_bounds, local_now

ONLINE_CHANNELS = ("shopee", "tiktok", "lazada")
DIRECT_CHANNELS = ("pos", "reseller")
# Harga online disimpan per channel tetapi selalu sama; shopee jadi acuan.
ONLINE_PRICE_CHANNEL = "shopee"

DEFAULT_IMAGE_URL = "https://placehold.co/40x40.png"

REASON_INITIAL_STOCK = "Initial Stock"
REASON_EDIT_ADJUSTMENT = "Stock adjustment during edit"
REASON_BULK_UPDATE = "Bulk Update"

ACCOUNT_INVENTORY = "Persediaan Barang"
ACCOUNT_CAPITAL_ADJUSTMENT = "Penyesuaian Modal (Persediaan)"

CHART_OF_ACCOUNTS = sorted([
    "Piutang Usaha / Kas",
    "Pendapatan Penjualan",
    "Beban Pokok Penjualan",
    ACCOUNT_INVENTORY,
    "Kas / Utang Usaha",
    ACCOUNT_CAPITAL_ADJUSTMENT,
    "Biaya Operasional",
    "Biaya Gaji",
    "Biaya Sewa",
    "Biaya Pemasaran",
    "Aset Tetap",
    "Akumulasi Penyusutan",
    "Utang Bank",
    "Modal Disetor",
    "Pendapatan Lain-lain",
    "Biaya Lain-lain",
])


@contextmanager
def _unit_of_work():
    try:
        yield
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _clean_str(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _require_str(value, label):
    cleaned = _clean_str(value)
    if not cleaned:
        raise ValidationError(f"{label} wajib diisi.")
    return cleaned


def _parse_int(value, label):
    if isinstance(value, bool):
        raise ValidationError(f"{label} harus berupa bilangan bulat.")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{label} harus berupa bilangan bulat.")
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} harus berupa bilangan bulat.")


def _parse_stock(value, label="Stok"):
    stock = _parse_int(value, label)
    if stock < 0:
        raise ValidationError(f"{label} tidak boleh negatif.")
    return stock


def _parse_price(value, label="Harga", required=True):
    if value is None or value == "":
        if required:
            raise ValidationError(f"{label} wajib diisi.")
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} harus berupa angka.")
    if price < 0:
        raise ValidationError(f"{label} tidak boleh negatif.")
    return price


def _normalize_channel(channel):
    return _require_str(channel, "Channel").lower()


def _normalize_awb(awb):
    return _require_str(awb, "Nomor resi").upper()


def _as_datetime(value):
    if value is None:
        return local_now()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date_type):
        return datetime.combine(value, time.min)
    raise ValidationError("Tanggal tidak valid.")


def _ensure_skus_free(skus, product_id=None, variant_ids=()):
    """Reject SKUs held by any row other than the ones being written.

    ``product_id`` and ``variant_ids`` name the rows whose current SKUs are
    being replaced, so SKUs may move freely between them.
    """
    skus = [sku for sku in skus if sku]
    if not skus:
        return
    products = Product.query.filter(Product.sku.in_(skus))
    if product_id:
        products = products.filter(Product.id != product_id)
    variants = Variant.query.filter(Variant.sku.in_(skus))
    if variant_ids:
        variants = variants.filter(Variant.id.notin_(list(variant_ids)))
    taken = products.first() or variants.first()
    if taken is not None:
        raise DuplicateError(f"SKU {taken.sku} sudah digunakan.")


def _assign_variant_skus(assignments):
    """Write new variant SKUs in two steps so they can be swapped."""
    moved = [(variant, sku) for variant, sku in assignments if variant.sku != sku]
    if not moved:
        return
    for variant, _ in moved:
        variant.sku = None
    db.session.flush()
    for variant, sku in moved:
        variant.sku = sku


def _ensure_unique_in_payload(skus):
    seen = set()
    for sku in skus:
        if not sku:
            continue
        if sku in seen:
            raise DuplicateError(f"SKU {sku} muncul lebih dari sekali.")
        seen.add(sku)


# ---------------------------------------------------------------------------
# Stock primitives
# ---------------------------------------------------------------------------

def _record_history(change, reason, new_level, product_id=None, variant_id=None,
                    accessory_id=None, when=None):
    db.session.add(
        StockHistory(
            product_id=product_id,
            variant_id=variant_id,
            accessory_id=accessory_id,
            date=when or local_now(),
            change=change,
            reason=reason,
            new_stock_level=new_level,
        )
    )


def _apply_stock_change(model, entity_id, change, label):
    """Conditionally add ``change`` to the row's stock; never below zero."""
    table = model.__table__
    result = db.session.execute(
        update(table)
        .where(table.c.id == entity_id, table.c.stock + change >= 0)
        .values(stock=table.c.stock + change)
    )
    entity = db.session.get(model, entity_id, populate_existing=True)
    if result.rowcount != 1:
        available = entity.stock if entity is not None else 0
        raise InsufficientStockError(label, available or 0, abs(change))
    return entity.stock


def _adjust_in_session(entity_id, change, reason, when=None):
    variant = db.session.get(Variant, entity_id)
    if variant is not None:
        label = f"{variant.product.name} - {variant.name}"
        level = _apply_stock_change(Variant, variant.id, change, label)
        _record_history(change, reason, level, product_id=variant.product_id,
                        variant_id=variant.id, when=when)
        return level

    product = db.session.get(Product, entity_id)
    if product is not None:
        if product.has_variants:
            raise ValidationError(
                f"Produk {product.name} memiliki varian; sesuaikan stok per varian."
            )
        level = _apply_stock_change(Product, product.id, change, product.name)
        _record_history(change, reason, level, product_id=product.id, when=when)
        return level

    accessory = db.session.get(Accessory, entity_id)
    if accessory is not None:
        level = _apply_stock_change(Accessory, accessory.id, change, accessory.name)
        _record_history(change, reason, level, accessory_id=accessory.id, when=when)
        return level

    raise NotFoundError(f"Item dengan ID {entity_id} tidak ditemukan.")


def adjust_stock(item_id, change, reason):
    """Apply a signed delta to a product, variant or accessory.

    Returns the resulting stock level, or ``None`` when ``change`` is zero
    (nothing is written in that case).
    """
    change = _parse_int(change, "Perubahan stok")
    reason = _require_str(reason, "Alasan")
    if change == 0:
        return None
    with _unit_of_work():
        level = _adjust_in_session(item_id, change, reason)
    return level


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

def _history_snapshot(rows):
    return tuple(
        domain.AdjustmentHistory(
            date=row.date,
            change=row.change,
            reason=row.reason,
            new_stock_level=row.new_stock_level,
        )
        for row in rows
    )


def _price_snapshot(rows):
    return tuple(
        domain.ChannelPrice(channel=row.channel, price=float(row.price))
        for row in sorted(rows, key=lambda r: r.channel)
    )


def _build_items(products):
    if not products:
        return []
    product_ids = [p.id for p in products]

    history_rows = (
        StockHistory.query.filter(StockHistory.product_id.in_(product_ids))
        .order_by(StockHistory.date.asc(), StockHistory.id.asc())
        .all()
    )
    history_map = defaultdict(list)
    for row in history_rows:
        history_map[row.variant_id or row.product_id].append(row)

    variant_ids = [v.id for p in products for v in p.variants]
    price_query = ChannelPrice.query.filter(ChannelPrice.product_id.in_(product_ids))
    if variant_ids:
        price_query = ChannelPrice.query.filter(
            or_(
                ChannelPrice.product_id.in_(product_ids),
                ChannelPrice.variant_id.in_(variant_ids),
            )
        )
    price_map = defaultdict(list)
    for row in price_query.all():
        price_map[row.owner_id].append(row)

    items = []
    for product in products:
        if product.has_variants:
            stocking = domain.VariantStock(
                variants=tuple(
                    domain.InventoryItemVariant(
                        id=v.id,
                        name=v.name,
                        sku=v.sku,
                        stock=int(v.stock or 0),
                        price=float(v.price or 0.0),
                        cost_price=v.cost_price,
                        history=_history_snapshot(history_map.get(v.id, [])),
                        channel_prices=_price_snapshot(price_map.get(v.id, [])),
                    )
                    for v in product.variants
                )
            )
        else:
            stocking = domain.SimpleStock(
                stock=int(product.stock or 0),
                price=float(product.price or 0.0),
                cost_price=product.cost_price,
                history=_history_snapshot(history_map.get(product.id, [])),
                channel_prices=_price_snapshot(price_map.get(product.id, [])),
            )
        items.append(
            domain.InventoryItem(
                id=product.id,
                name=product.name,
                category=product.category,
                sku=product.sku,
                image_url=product.image_url,
                size=product.size,
                is_archived=bool(product.is_archived),
                stocking=stocking,
            )
        )
    return items


def _sale_snapshot(sale):
    variant = sale.variant
    product = sale.product
    return domain.Sale(
        id=sale.id,
        product_id=sale.product_id,
        variant_id=sale.variant_id,
        channel=sale.channel,
        quantity=sale.quantity,
        price_at_sale=float(sale.price_at_sale),
        cogs_at_sale=float(sale.cogs_at_sale or 0.0),
        sale_date=sale.sale_date,
        product_name=product.name if product else "",
        variant_name=variant.name if variant else None,
        sku=(variant.sku if variant and variant.sku else None) or (product.sku if product else None),
        transaction_id=sale.transaction_id,
        payment_method=sale.payment_method,
        reseller_name=sale.reseller_name,
        cancelled_at=sale.cancelled_at,
    )


def _receipt_snapshot(receipt):
    return domain.ShippingReceipt(
        id=receipt.id,
        awb=receipt.awb,
        channel=receipt.channel,
        date=receipt.date,
        status=receipt.status,
    )


def _accessory_snapshot(accessory, history_rows):
    return domain.Accessory(
        id=accessory.id,
        name=accessory.name,
        sku=accessory.sku,
        category=accessory.category,
        stock=int(accessory.stock or 0),
        price=accessory.price,
        cost_price=accessory.cost_price,
        history=_history_snapshot(history_rows),
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def fetch_inventory_data():
    products = (
        Product.query.options(selectinload(Product.variants))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    items = _build_items(products)
    categories = sorted({item.category for item in items})
    return domain.InventoryData(items=items, categories=categories)


def _parse_variant_payload(raw, index):
    label = f"Varian #{index}"
    return {
        "id": _clean_str(raw.get("id")),
        "name": _require_str(raw.get("name"), f"Nama {label}"),
        "sku": _clean_str(raw.get("sku")),
        "stock": _parse_stock(raw.get("stock", 0), f"Stok {label}"),
        "price": _parse_price(raw.get("price"), f"Harga {label}"),
        "cost_price": _parse_price(raw.get("cost_price"), f"Harga modal {label}", required=False),
    }


def _parse_product_payload(data):
    variants_raw = data.get("variants") or []
    variants = [_parse_variant_payload(v, i) for i, v in enumerate(variants_raw, start=1)]
    payload = {
        "name": _require_str(data.get("name"), "Nama produk"),
        "category": _require_str(data.get("category"), "Kategori"),
        "sku": _clean_str(data.get("sku")),
        "image_url": _clean_str(data.get("image_url")) or DEFAULT_IMAGE_URL,
        "size": _clean_str(data.get("size")),
        "variants": variants,
        "has_variants": bool(variants),
    }
    if variants:
        payload.update(stock=None, price=None, cost_price=None)
    else:
        payload.update(
            stock=_parse_stock(data.get("stock", 0)),
            price=_parse_price(data.get("price")),
            cost_price=_parse_price(data.get("cost_price"), "Harga modal", required=False),
        )
    _ensure_unique_in_payload([payload["sku"]] + [v["sku"] for v in variants])
    return payload


def add_product(data):
    """Create a product (simple or with variants); returns its id."""
    payload = _parse_product_payload(data)
    with _unit_of_work():
        _ensure_skus_free([payload["sku"]] + [v["sku"] for v in payload["variants"]])

        product = Product(
            name=payload["name"],
            category=payload["category"],
            sku=payload["sku"],
            image_url=payload["image_url"],
            size=None if payload["has_variants"] else payload["size"],
            has_variants=payload["has_variants"],
            stock=payload["stock"],
            price=payload["price"],
            cost_price=payload["cost_price"],
        )
        db.session.add(product)
        db.session.flush()

        if payload["has_variants"]:
            for position, v in enumerate(payload["variants"]):
                variant = Variant(
                    product_id=product.id,
                    name=v["name"],
                    sku=v["sku"],
                    price=v["price"],
                    cost_price=v["cost_price"],
                    stock=v["stock"],
                    position=position,
                )
                db.session.add(variant)
                db.session.flush()
                if variant.stock > 0:
                    _record_history(variant.stock, REASON_INITIAL_STOCK, variant.stock,
                                    product_id=product.id, variant_id=variant.id)
        elif product.stock > 0:
            _record_history(product.stock, REASON_INITIAL_STOCK, product.stock,
                            product_id=product.id)
    logging.info("Produk %s ditambahkan (%s)", product.name, product.id)
    return product.id


def edit_product(item_id, data):
    payload = _parse_product_payload(data)
    with _unit_of_work():
        product = db.session.get(Product, item_id)
        if product is None:
            raise NotFoundError(f"Produk dengan ID {item_id} tidak ditemukan.")
        if bool(product.has_variants) != payload["has_variants"]:
            raise ValidationError(
                "Tipe stok produk (dengan/tanpa varian) tidak bisa diubah saat edit."
            )

        existing = {v.id: v for v in product.variants}
        edited_ids = [v["id"] for v in payload["variants"] if v["id"]]
        for variant_id in edited_ids:
            if variant_id not in existing:
                raise NotFoundError(f"Varian {variant_id} bukan milik produk {product.name}.")
        _ensure_skus_free(
            [payload["sku"]] + [v["sku"] for v in payload["variants"]],
            product_id=product.id,
            variant_ids=edited_ids,
        )

        product.name = payload["name"]
        product.category = payload["category"]
        product.sku = payload["sku"]
        product.image_url = payload["image_url"]

        if not payload["has_variants"]:
            product.size = payload["size"]
            product.price = payload["price"]
            product.cost_price = payload["cost_price"]
            change = payload["stock"] - int(product.stock or 0)
            if change:
                product.stock = payload["stock"]
                _record_history(change, REASON_EDIT_ADJUSTMENT, product.stock,
                                product_id=product.id)
            return

        sku_assignments = []
        for v in payload["variants"]:
            if not v["id"]:
                continue
            variant = existing[v["id"]]
            change = v["stock"] - int(variant.stock or 0)
            variant.name = v["name"]
            variant.price = v["price"]
            variant.cost_price = v["cost_price"]
            sku_assignments.append((variant, v["sku"]))
            if change:
                variant.stock = v["stock"]
                _record_history(change, REASON_EDIT_ADJUSTMENT, variant.stock,
                                product_id=product.id, variant_id=variant.id)
        _assign_variant_skus(sku_assignments)

        next_position = max((v.position for v in product.variants), default=-1) + 1
        for v in payload["variants"]:
            if v["id"]:
                continue
            variant = Variant(
                product_id=product.id,
                name=v["name"],
                sku=v["sku"],
                price=v["price"],
                cost_price=v["cost_price"],
                stock=v["stock"],
                position=next_position,
            )
            next_position += 1
            db.session.add(variant)
            db.session.flush()
            if variant.stock > 0:
                _record_history(variant.stock, REASON_INITIAL_STOCK, variant.stock,
                                product_id=product.id, variant_id=variant.id)


def edit_variants_bulk(item_id, variants, reason=REASON_BULK_UPDATE):
    """Set stock (and optionally name/sku/price) for several variants of one product.

    Each variant whose stock actually changes gets exactly one history row
    carrying ``reason``.
    """
    reason = _require_str(reason, "Alasan")
    if not variants:
        raise ValidationError("Tidak ada varian yang diperbarui.")
    seen = set()
    with _unit_of_work():
        product = db.session.get(Product, item_id)
        if product is None:
            raise NotFoundError(f"Produk dengan ID {item_id} tidak ditemukan.")
        owned = {v.id: v for v in product.variants}
        sku_assignments = []
        for raw in variants:
            variant_id = _clean_str(raw.get("id"))
            variant = owned.get(variant_id)
            if variant is None:
                raise NotFoundError(f"Varian {variant_id} bukan milik produk {product.name}.")
            if variant_id in seen:
                raise ValidationError(f"Varian {variant.name} muncul lebih dari sekali.")
            seen.add(variant_id)
            if "sku" in raw:
                sku_assignments.append((variant, _clean_str(raw.get("sku"))))

        new_skus = [sku for _, sku in sku_assignments]
        _ensure_unique_in_payload(new_skus)
        _ensure_skus_free(new_skus, variant_ids=[v.id for v, _ in sku_assignments])
        _assign_variant_skus(sku_assignments)

        for index, raw in enumerate(variants, start=1):
            variant = owned[_clean_str(raw.get("id"))]
            new_stock = _parse_stock(raw.get("stock"), f"Stok {variant.name}")
            if "name" in raw:
                variant.name = _require_str(raw.get("name"), f"Nama varian #{index}")
            if "price" in raw:
                variant.price = _parse_price(raw.get("price"), f"Harga {variant.name}")

            change = new_stock - int(variant.stock or 0)
            if change:
                variant.stock = new_stock
                _record_history(change, reason, new_stock,
                                product_id=product.id, variant_id=variant.id)


def set_archived(product_id, archived=True):
    with _unit_of_work():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Produk dengan ID {product_id} tidak ditemukan.")
        product.is_archived = bool(archived)


def find_product_by_sku(sku):
    """Resolve a scanned SKU.

    A variant SKU returns the parent item carrying only the matched variant;
    a parent SKU returns the item with all of its variants.
    """
    sku = _clean_str(sku)
    if not sku:
        return None

    variant = Variant.query.filter(Variant.sku == sku).first()
    if variant is not None:
        item = _build_items([variant.product])[0]
        matched = tuple(v for v in item.variants if v.id == variant.id)
        return replace(item, stocking=domain.VariantStock(variants=matched))

    product = Product.query.filter(Product.sku == sku).first()
    if product is not None:
        return _build_items([product])[0]
    return None


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------

def _channel_price(channel, product_id=None, variant_id=None):
    lookup_channel = ONLINE_PRICE_CHANNEL if channel in ONLINE_CHANNELS else channel
    query = ChannelPrice.query.filter(ChannelPrice.channel == lookup_channel)
    if variant_id:
        query = query.filter(ChannelPrice.variant_id == variant_id)
    else:
        query = query.filter(ChannelPrice.product_id == product_id, ChannelPrice.variant_id.is_(None))
    row = query.first()
    return float(row.price) if row else None


def _set_channel_price(channel, price, product_id=None, variant_id=None):
    query = ChannelPrice.query.filter(ChannelPrice.channel == channel)
    if variant_id:
        query = query.filter(ChannelPrice.variant_id == variant_id)
    else:
        query = query.filter(ChannelPrice.product_id == product_id, ChannelPrice.variant_id.is_(None))
    row = query.first()
    if price is None:
        if row is not None:
            db.session.delete(row)
        return
    if row is None:
        db.session.add(ChannelPrice(product_id=None if variant_id else product_id,
                                    variant_id=variant_id, channel=channel, price=price))
    else:
        row.price = price


def update_prices(updates):
    """Update base/cost/channel prices for products and variants.

    ``pos`` and ``reseller`` prices missing from an update are cleared; an
    online price, when given, is written to every online channel.
    """
    with _unit_of_work():
        for raw in updates or []:
            entity_type = (raw.get("type") or "").lower()
            entity_id = _clean_str(raw.get("id"))
            if entity_type == "product":
                entity = db.session.get(Product, entity_id)
            elif entity_type == "variant":
                entity = db.session.get(Variant, entity_id)
            else:
                raise ValidationError(f"Tipe harga tidak dikenal: {entity_type or '-'}.")
            if entity is None:
                raise NotFoundError(f"{entity_type.title()} dengan ID {entity_id} tidak ditemukan.")

            old_cost = float(entity.cost_price or 0.0)
            cost_price = _parse_price(raw.get("cost_price"), "Harga modal", required=False)
            price = _parse_price(raw.get("price"), "Harga", required=False)
            if cost_price is not None:
                entity.cost_price = cost_price
            if price is not None:
                entity.price = price

            new_cost = float(entity.cost_price or 0.0)
            stock = int(entity.stock or 0)
            if old_cost <= 0 < new_cost and stock > 0:
                db.session.add(
                    ManualJournalEntry(
                        date=local_now(),
                        description=(
                            f"Penyesuaian Modal (HPP) {getattr(entity, 'name', '')}: "
                            f"Rp{new_cost:,.0f} x {stock} stok"
                        ),
                        debit_account=ACCOUNT_INVENTORY,
                        credit_account=ACCOUNT_CAPITAL_ADJUSTMENT,
                        amount=round(new_cost * stock, 2),
                        type="auto",
                    )
                )

            owner = {"variant_id": entity.id} if entity_type == "variant" else {"product_id": entity.id}
            channel_prices = {}
            for entry in raw.get("channel_prices") or []:
                channel = _normalize_channel(entry.get("channel"))
                channel_prices[channel] = _parse_price(entry.get("price"), f"Harga {channel}", required=False)

            for channel in DIRECT_CHANNELS:
                _set_channel_price(channel, channel_prices.get(channel), **owner)

            online = next((c for c in ONLINE_CHANNELS if c in channel_prices), None)
            if online is not None:
                for channel in ONLINE_CHANNELS:
                    _set_channel_price(channel, channel_prices[online], **owner)


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

def _sale_reason(prefix, channel, reseller_name=None):
    reason = f"{prefix} ({channel})"
    if reseller_name:
        reason += f" - {reseller_name}"
    return reason


def perform_sale(sku, channel, quantity, sale_date=None, transaction_id=None,
                 payment_method=None, reseller_name=None):
    sku = _require_str(sku, "SKU")
    channel = _normalize_channel(channel)
    quantity = _parse_int(quantity, "Jumlah")
    if quantity <= 0:
        raise ValidationError("Jumlah harus lebih dari 0.")
    reseller_name = _clean_str(reseller_name)
    sale_date = sale_date or local_now()

    with _unit_of_work():
        variant = Variant.query.filter(Variant.sku == sku).first()
        if variant is not None:
            product = variant.product
            base_price = float(variant.price or 0.0)
            cost_price = variant.cost_price
            price = _channel_price(channel, variant_id=variant.id)
            entity_id = variant.id
        else:
            product = Product.query.filter(
                Product.sku == sku, Product.has_variants.is_(False)
            ).first()
            if product is None:
                raise NotFoundError(
                    f"Produk atau varian dengan SKU {sku} tidak ditemukan atau memiliki varian."
                )
            base_price = float(product.price or 0.0)
            cost_price = product.cost_price
            price = _channel_price(channel, product_id=product.id)
            entity_id = product.id

        _adjust_in_session(entity_id, -quantity,
                           _sale_reason("Sale", channel, reseller_name), when=sale_date)
        sale = Sale(
            transaction_id=_clean_str(transaction_id),
            payment_method=_clean_str(payment_method),
            reseller_name=reseller_name,
            product_id=product.id,
            variant_id=variant.id if variant is not None else None,
            channel=channel,
            quantity=quantity,
            price_at_sale=price if price is not None else base_price,
            cogs_at_sale=float(cost_price or 0.0),
            sale_date=sale_date,
        )
        db.session.add(sale)
        db.session.flush()
        snapshot = _sale_snapshot(sale)

    logging.info("Penjualan #%s: %s x%s via %s", snapshot.id, sku, quantity, channel)
    return snapshot


def _cancel_in_session(sale, reason_prefix):
    table = Sale.__table__
    result = db.session.execute(
        update(table)
        .where(table.c.id == sale.id, table.c.cancelled_at.is_(None))
        .values(cancelled_at=local_now())
    )
    if result.rowcount != 1:
        raise SaleAlreadyCancelledError(f"Penjualan #{sale.id} sudah dibatalkan.")
    _adjust_in_session(
        sale.variant_id or sale.product_id,
        sale.quantity,
        _sale_reason(reason_prefix, sale.channel, sale.reseller_name),
    )


def revert_sale(sale_id):
    """Cancel one sale: flag it and return its quantity to stock, exactly once."""
    sale_id = _parse_int(sale_id, "ID penjualan")
    with _unit_of_work():
        sale = db.session.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError(f"Penjualan #{sale_id} tidak ditemukan.")
        _cancel_in_session(sale, "Cancelled Sale")
    logging.info("Penjualan #%s dibatalkan", sale_id)


def revert_sale_by_transaction(transaction_id):
    transaction_id = _require_str(transaction_id, "ID transaksi")
    if transaction_id.startswith("sale-"):
        return revert_sale(transaction_id[len("sale-"):])

    with _unit_of_work():
        sales = Sale.query.filter(Sale.transaction_id == transaction_id).order_by(Sale.id).all()
        if not sales:
            raise NotFoundError(f"Transaksi {transaction_id} tidak ditemukan.")
        open_sales = [s for s in sales if s.cancelled_at is None]
        if not open_sales:
            raise SaleAlreadyCancelledError(f"Transaksi {transaction_id} sudah dibatalkan.")
        for sale in open_sales:
            _cancel_in_session(sale, f"Cancelled Transaction #{transaction_id}")
    logging.info("Transaksi %s dibatalkan (%s baris)", transaction_id, len(open_sales))


def fetch_all_sales(include_cancelled=False):
    query = Sale.query
    if not include_cancelled:
        query = query.filter(Sale.cancelled_at.is_(None))
    return [_sale_snapshot(s) for s in query.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()]


def get_sales_by_date(channel, date):
    channel = _normalize_channel(channel)
    start, end = day_bounds(date)
    sales = (
        Sale.query.filter(
            Sale.channel == channel,
            Sale.sale_date >= start,
            Sale.sale_date < end,
            Sale.cancelled_at.is_(None),
        )
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .all()
    )
    return [_sale_snapshot(s) for s in sales]


# ---------------------------------------------------------------------------
# Accessories
# ---------------------------------------------------------------------------

def fetch_accessories():
    accessories = Accessory.query.order_by(Accessory.name.asc()).all()
    history_rows = (
        StockHistory.query.filter(StockHistory.accessory_id.isnot(None))
        .order_by(StockHistory.date.asc(), StockHistory.id.asc())
        .all()
    )
    history_map = defaultdict(list)
    for row in history_rows:
        history_map[row.accessory_id].append(row)
    return [_accessory_snapshot(a, history_map.get(a.id, [])) for a in accessories]


def _parse_accessory_payload(data):
    return {
        "name": _require_str(data.get("name"), "Nama aksesoris"),
        "sku": _clean_str(data.get("sku")),
        "category": _clean_str(data.get("category")),
        "stock": _parse_stock(data.get("stock", 0)),
        "price": _parse_price(data.get("price"), required=False),
        "cost_price": _parse_price(data.get("cost_price"), "Harga modal", required=False),
    }


def add_accessory(data):
    payload = _parse_accessory_payload(data)
    with _unit_of_work():
        accessory = Accessory(**payload)
        db.session.add(accessory)
        db.session.flush()
        if accessory.stock > 0:
            _record_history(accessory.stock, REASON_INITIAL_STOCK, accessory.stock,
                            accessory_id=accessory.id)
    return accessory.id


def edit_accessory(accessory_id, data):
    payload = _parse_accessory_payload(data)
    with _unit_of_work():
        accessory = db.session.get(Accessory, accessory_id)
        if accessory is None:
            raise NotFoundError(f"Aksesoris dengan ID {accessory_id} tidak ditemukan.")
        change = payload.pop("stock") - int(accessory.stock or 0)
        for key, value in payload.items():
            setattr(accessory, key, value)
        if change:
            accessory.stock = accessory.stock + change
            _record_history(change, REASON_EDIT_ADJUSTMENT, accessory.stock,
                            accessory_id=accessory.id)


# ---------------------------------------------------------------------------
# Resellers
# ---------------------------------------------------------------------------

def get_resellers():
    return [
        domain.Reseller(id=r.id, name=r.name, phone=r.phone, address=r.address)
        for r in Reseller.query.order_by(Reseller.name.asc()).all()
    ]


def add_reseller(name, phone=None, address=None):
    name = _require_str(name, "Nama reseller")
    try:
        with _unit_of_work():
            reseller = Reseller(name=name, phone=_clean_str(phone), address=_clean_str(address))
            db.session.add(reseller)
    except IntegrityError:
        raise DuplicateError(f"Reseller {name} sudah ada.")
    return reseller.id


def edit_reseller(reseller_id, name, phone=None, address=None):
    name = _require_str(name, "Nama reseller")
    try:
        with _unit_of_work():
            reseller = db.session.get(Reseller, reseller_id)
            if reseller is None:
                raise NotFoundError(f"Reseller #{reseller_id} tidak ditemukan.")
            reseller.name = name
            reseller.phone = _clean_str(phone)
            reseller.address = _clean_str(address)
    except IntegrityError:
        raise DuplicateError(f"Reseller {name} sudah ada.")


def delete_reseller(reseller_id):
    with _unit_of_work():
        reseller = db.session.get(Reseller, reseller_id)
        if reseller is None:
            raise NotFoundError(f"Reseller #{reseller_id} tidak ditemukan.")
        db.session.delete(reseller)


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------

def add_manual_journal_entry(date, description, debit_account, credit_account, amount):
    description = _require_str(description, "Deskripsi")
    for account in (debit_account, credit_account):
        if account not in CHART_OF_ACCOUNTS:
            raise ValidationError(f"Akun {account} tidak ada di bagan akun.")
    if debit_account == credit_account:
        raise ValidationError("Akun debit dan kredit tidak boleh sama.")
    amount = _parse_price(amount, "Jumlah")
    if amount <= 0:
        raise ValidationError("Jumlah harus lebih dari 0.")
    with _unit_of_work():
        entry = ManualJournalEntry(
            date=_as_datetime(date),
            description=description,
            debit_account=debit_account,
            credit_account=credit_account,
            amount=amount,
            type="manual",
        )
        db.session.add(entry)
    return entry.id


def fetch_manual_journal_entries():
    entries = ManualJournalEntry.query.order_by(
        ManualJournalEntry.date.desc(), ManualJournalEntry.id.desc()
    ).all()
    return [
        domain.ManualJournalEntry(
            id=e.id,
            date=e.date,
            description=e.description,
            debit_account=e.debit_account,
            credit_account=e.credit_account,
            amount=float(e.amount),
            type=e.type,
        )
        for e in entries
    ]


# ---------------------------------------------------------------------------
# Shipping receipts
# ---------------------------------------------------------------------------

def add_shipping_receipt(awb, channel, status=RECEIPT_STATUS_PENDING, date=None):
    awb = _normalize_awb(awb)
    channel = _require_str(channel, "Jasa pengiriman")
    status = _clean_str(status) or RECEIPT_STATUS_PENDING
    try:
        with _unit_of_work():
            receipt = ShippingReceipt(awb=awb, channel=channel, status=status,
                                      date=_as_datetime(date))
            db.session.add(receipt)
            db.session.flush()
            snapshot = _receipt_snapshot(receipt)
    except IntegrityError:
        raise DuplicateError(f"Resi {awb} sudah pernah di-scan.")
    return snapshot


def fetch_shipping_receipts(start=None, end=None, status=None):
    query = ShippingReceipt.query
    if start is not None:
        query = query.filter(ShippingReceipt.date >= day_bounds(start)[0])
    if end is not None:
        query = query.filter(ShippingReceipt.date < day_bounds(end)[1])
    if status:
        query = query.filter(ShippingReceipt.status == status)
    receipts = query.order_by(ShippingReceipt.date.desc(), ShippingReceipt.id.desc()).all()
    return [_receipt_snapshot(r) for r in receipts]


def get_shipping_receipt(receipt_id):
    receipt = db.session.get(ShippingReceipt, receipt_id)
    if receipt is None:
        raise NotFoundError(f"Resi #{receipt_id} tidak ditemukan.")
    return _receipt_snapshot(receipt)


def find_shipping_receipt(awb):
    awb = _normalize_awb(awb)
    receipt = ShippingReceipt.query.filter(ShippingReceipt.awb == awb).first()
    return _receipt_snapshot(receipt) if receipt else None


def update_shipping_receipt_status(receipt_id, status):
    status = _require_str(status, "Status")
    with _unit_of_work():
        receipt = db.session.get(ShippingReceipt, receipt_id)
        if receipt is None:
            raise NotFoundError(f"Resi #{receipt_id} tidak ditemukan.")
        receipt.status = status
        snapshot = _receipt_snapshot(receipt)
    return snapshot


def delete_shipping_receipt(receipt_id):
    with _unit_of_work():
        receipt = db.session.get(ShippingReceipt, receipt_id)
        if receipt is None:
            raise NotFoundError(f"Resi #{receipt_id} tidak ditemukan.")
        db.session.delete(receipt)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def save_setting(key, value):
    key = _require_str(key, "Kunci pengaturan")
    with _unit_of_work():
        setting = db.session.get(Setting, key)
        encoded = json.dumps(value)
        if setting is None:
            db.session.add(Setting(key=key, value=encoded))
        else:
            setting.value = encoded


def get_setting(key):
    setting = db.session.get(Setting, key)
    if setting is None:
        return None
    return json.loads(setting.value)
