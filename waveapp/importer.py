from datetime import datetime
from io import BytesIO

import pandas as pd

from waveapp.errors import InventoryError, ValidationError

REQUIRED_COLUMNS = [
    "parent_sku",
    "product_name",
    "category",
    "variant_sku",
    "variant_name",
    "price",
    "stock",
]
OPTIONAL_COLUMNS = ["image_url", "cost_price"]


def _clean_import_str(value):
    if pd.isna(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    value = str(value).strip()
    return value or None


def _clean_import_int(value):
    if pd.isna(value) or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _clean_import_float(value):
    if pd.isna(value) or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _import_stock(value, row_number):
    if pd.isna(value) or str(value).strip() == "":
        return 0
    stock = _clean_import_int(value)
    if stock is None:
        raise ValidationError(f"Stok baris {row_number} tidak valid: {value}")
    return stock


def read_product_file(file_bytes, filename):
    if (filename or "").lower().endswith((".xlsx", ".xls")):
        return pd.read_excel(BytesIO(file_bytes))
    return pd.read_csv(BytesIO(file_bytes))


def _build_payload(parent_sku, rows):
    first_row, first = rows[0]
    payload = {
        "name": _clean_import_str(first.get("product_name")),
        "category": _clean_import_str(first.get("category")),
        "sku": parent_sku,
        "image_url": _clean_import_str(first.get("image_url")),
    }
    variant_rows = [(n, r) for n, r in rows if _clean_import_str(r.get("variant_name"))]
    if not variant_rows:
        payload.update(
            stock=_import_stock(first.get("stock"), first_row),
            price=_clean_import_float(first.get("price")),
            cost_price=_clean_import_float(first.get("cost_price")),
        )
        return payload

    payload["variants"] = [
        {
            "name": _clean_import_str(row.get("variant_name")),
            "sku": _clean_import_str(row.get("variant_sku")),
            "stock": _import_stock(row.get("stock"), row_number),
            "price": _clean_import_float(row.get("price")),
            "cost_price": _clean_import_float(row.get("cost_price")),
        }
        for row_number, row in variant_rows
    ]
    return payload


def import_products(df, service, progress_cb=None):
    """Create products from an upload sheet, one product per ``parent_sku``.

    Rows without ``variant_name`` describe a simple product. Groups that fail
    validation or collide with an existing SKU are skipped and reported.
    """
    df = df.rename(columns=lambda c: str(c).strip().lower())
    missing = [column for column in REQUIRED_COLUMNS if column not in df.columns]
    if missing:
        raise InventoryError(
            "Format file tidak valid! Kolom berikut tidak ada: " + ", ".join(missing)
        )
    for column in OPTIONAL_COLUMNS:
        if column not in df.columns:
            df[column] = None

    groups = {}
    skipped_notes = []
    for index, row in df.iterrows():
        row_number = index + 2  # baris 1 adalah header
        parent_sku = _clean_import_str(row.get("parent_sku"))
        if not parent_sku:
            skipped_notes.append(f"Baris {row_number}: parent_sku kosong")
            continue
        groups.setdefault(parent_sku, []).append((row_number, row))

    created_count = 0
    total = len(groups) or 1
    for position, (parent_sku, rows) in enumerate(groups.items(), start=1):
        first_row = rows[0][0]
        try:
            service.add_product(_build_payload(parent_sku, rows))
            created_count += 1
        except InventoryError as exc:
            skipped_notes.append(f"Baris {first_row} ({parent_sku}): {exc}")
        if progress_cb:
            progress_cb(position / total)

    return {
        "created": created_count,
        "skipped_notes": skipped_notes,
        "finished_at": datetime.utcnow().isoformat(),
    }
