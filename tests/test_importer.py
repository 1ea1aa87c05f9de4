import pandas as pd
import pytest

from waveapp import inventory_service as service
from waveapp.errors import InventoryError
from waveapp.importer import import_products, read_product_file

from conftest import make_simple_product


def _sheet(rows):
    columns = ["parent_sku", "product_name", "category", "variant_sku", "variant_name", "price", "stock"]
    return pd.DataFrame(rows, columns=columns)


def test_import_groups_rows_by_parent_sku(app):
    df = _sheet([
        ["KMJ", "Kemeja", "Pakaian", "KMJ-S", "S", 120000, 5],
        ["KMJ", "Kemeja", "Pakaian", "KMJ-M", "M", 125000, 8],
        ["TP-1", "Topi", "Aksesoris", None, None, 35000, 12],
    ])
    with app.app_context():
        result = import_products(df, service)

        assert result["created"] == 2
        assert result["skipped_notes"] == []
        shirt = service.find_product_by_sku("KMJ")
        assert [(v.sku, v.stock) for v in shirt.variants] == [("KMJ-S", 5), ("KMJ-M", 8)]
        hat = service.find_product_by_sku("TP-1")
        assert not hat.has_variants
        assert hat.stocking.stock == 12
        assert hat.image_url == service.DEFAULT_IMAGE_URL


def test_import_skips_existing_and_invalid_groups(app):
    df = _sheet([
        ["KP-01", "Kaos Polos", "Pakaian", None, None, 50000, 3],
        [None, "Tanpa SKU", "Pakaian", None, None, 1000, 1],
        ["BAD", "Harga Rusak", "Pakaian", None, None, -5, 1],
        ["OK-1", "Celana", "Pakaian", None, None, 150000, 2],
    ])
    with app.app_context():
        make_simple_product(service, sku="KP-01")
        result = import_products(df, service)

        assert result["created"] == 1
        notes = result["skipped_notes"]
        assert len(notes) == 3
        assert notes[0].startswith("Baris 3")
        assert any("KP-01" in note for note in notes)
        assert any("BAD" in note for note in notes)


def test_import_reports_unreadable_stock(app):
    df = _sheet([
        ["KP-02", "Kaos Garis", "Pakaian", None, None, 50000, "sepuluh"],
        ["KMJ", "Kemeja", "Pakaian", "KMJ-S", "S", 120000, 5],
        ["KMJ", "Kemeja", "Pakaian", "KMJ-M", "M", 125000, "lima"],
        ["TP-1", "Topi", "Aksesoris", None, None, 35000, None],
    ])
    with app.app_context():
        result = import_products(df, service)

        assert result["created"] == 1
        notes = result["skipped_notes"]
        assert len(notes) == 2
        assert notes[0].startswith("Baris 2 (KP-02)")
        assert "sepuluh" in notes[0]
        assert notes[1] == "Baris 3 (KMJ): Stok baris 4 tidak valid: lima"
        assert service.find_product_by_sku("KP-02") is None
        assert service.find_product_by_sku("KMJ") is None
        assert service.find_product_by_sku("TP-1").stocking.stock == 0


def test_import_requires_all_columns(app):
    df = pd.DataFrame([["KMJ", "Kemeja"]], columns=["parent_sku", "product_name"])
    with app.app_context():
        with pytest.raises(InventoryError) as excinfo:
            import_products(df, service)
    assert "category" in str(excinfo.value)


def test_read_product_file_csv():
    content = (
        "parent_sku,product_name,category,variant_sku,variant_name,price,stock\n"
        "TP-1,Topi,Aksesoris,,,35000,12\n"
    ).encode("utf-8")
    df = read_product_file(content, "produk.csv")
    assert list(df["parent_sku"]) == ["TP-1"]
    assert df.loc[0, "stock"] == 12
