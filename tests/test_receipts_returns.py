import pytest

from waveapp import inventory_service as service
from waveapp.errors import DuplicateError, NotFoundError, ReceiptStateError, ValidationError
from waveapp.models import (
    RECEIPT_STATUS_PENDING,
    RECEIPT_STATUS_RECONCILED,
    RECEIPT_STATUS_RETURNED,
)
from waveapp.returns import ReturnSession, verify_returned_receipt

from conftest import make_simple_product, make_variant_product


def test_scanned_receipt_is_normalized_and_pending(inventory):
    receipt = inventory.scan_receipt("  jnt123 ", "J&T")

    assert receipt.awb == "JNT123"
    assert receipt.receipt_number == "JNT123"
    assert receipt.status == RECEIPT_STATUS_PENDING
    assert [r.awb for r in inventory.shipping_receipts] == ["JNT123"]


def test_duplicate_awb_is_rejected(inventory):
    inventory.scan_receipt("JNT123", "J&T")
    with pytest.raises(DuplicateError):
        inventory.scan_receipt("jnt123", "J&T")
    assert len(service.fetch_shipping_receipts()) == 1


def test_receipt_status_update_and_delete(inventory):
    receipt = inventory.scan_receipt("SPX1", "SPX")

    updated = inventory.update_receipt_status(receipt.id, "shipped")
    assert updated.status == "shipped"
    assert service.fetch_shipping_receipts(status="shipped")[0].id == receipt.id

    inventory.remove_receipt(receipt.id)
    assert inventory.shipping_receipts == []
    with pytest.raises(NotFoundError):
        inventory.get_receipt(receipt.id)


def test_return_session_restores_stock_and_reconciles(inventory):
    product_id = make_simple_product(service, sku="A1", stock=10)
    make_variant_product(service)
    inventory.record_sale("A1", "shopee", 2)
    inventory.record_sale("KMJ-S", "shopee", 1)
    receipt = inventory.scan_receipt("SPX99", "SPX")

    session = ReturnSession(inventory, receipt)
    session.scan("A1")
    session.scan("A1")
    line = session.scan("KMJ-S")
    assert [(l.sku, l.quantity) for l in session.items] == [("A1", 2), ("KMJ-S", 1)]
    assert line.name == "Kemeja - S"

    result = session.finalize()

    assert result.status == RECEIPT_STATUS_RECONCILED
    assert inventory.get_item(product_id).total_stock == 10
    variant = inventory.get_product_by_sku("KMJ-S").variants[0]
    assert variant.stock == 5
    assert variant.history[-1].reason == "Return dari resi #SPX99"
    assert session.items == []


def test_return_quantity_can_be_edited_or_removed(inventory):
    make_simple_product(service, sku="A1", stock=10)
    make_simple_product(service, name="Topi", sku="TP-1", stock=1)
    receipt = inventory.scan_receipt("SPX1", "SPX")

    session = ReturnSession(inventory, receipt)
    first = session.scan("A1")
    second = session.scan("TP-1")
    session.set_quantity(first.entity_id, 4)
    session.set_quantity(second.entity_id, 0)

    assert [(l.sku, l.quantity) for l in session.items] == [("A1", 4)]
    with pytest.raises(NotFoundError):
        session.set_quantity("bukan-item", 1)


def test_return_quantity_must_be_a_number(inventory):
    make_simple_product(service, sku="A1", stock=10)
    receipt = inventory.scan_receipt("SPX1", "SPX")

    session = ReturnSession(inventory, receipt)
    line = session.scan("A1")
    with pytest.raises(ValidationError):
        session.set_quantity(line.entity_id, "abc")
    with pytest.raises(ValidationError):
        session.set_quantity(line.entity_id, None)
    assert [(l.sku, l.quantity) for l in session.items] == [("A1", 1)]


def test_return_rejects_ambiguous_variant_sku(inventory):
    make_variant_product(service)
    receipt = inventory.scan_receipt("SPX1", "SPX")
    session = ReturnSession(inventory, receipt)

    with pytest.raises(ValidationError):
        session.scan("KMJ")
    assert session.scan("KMJ", inventory.get_product_by_sku("KMJ-M").variants[0].id).sku == "KMJ-M"


def test_finalize_needs_items_and_unreconciled_receipt(inventory):
    make_simple_product(service, sku="A1", stock=10)
    receipt = inventory.scan_receipt("SPX1", "SPX")

    with pytest.raises(ValidationError):
        ReturnSession(inventory, receipt).finalize()

    inventory.update_receipt_status(receipt.id, RECEIPT_STATUS_RECONCILED)
    session = ReturnSession(inventory, receipt)
    session.scan("A1")
    with pytest.raises(ReceiptStateError):
        session.finalize()
    assert service.find_product_by_sku("A1").total_stock == 10


def test_failed_status_update_keeps_restored_stock(inventory, monkeypatch, caplog):
    make_simple_product(service, sku="A1", stock=10)
    receipt = inventory.scan_receipt("SPX1", "SPX")
    session = ReturnSession(inventory, receipt)
    session.scan("A1")

    def _fail(*args, **kwargs):
        raise RuntimeError("koneksi putus")

    monkeypatch.setattr(inventory, "update_receipt_status", _fail)
    with pytest.raises(RuntimeError):
        session.finalize()

    assert service.find_product_by_sku("A1").total_stock == 11
    assert service.get_shipping_receipt(receipt.id).status == RECEIPT_STATUS_PENDING
    assert "status resi gagal diperbarui" in caplog.text


def test_verify_returned_receipt(inventory):
    receipt = inventory.scan_receipt("SPX1", "SPX")

    with pytest.raises(ReceiptStateError):
        verify_returned_receipt(inventory, "spx1")

    inventory.update_receipt_status(receipt.id, RECEIPT_STATUS_RETURNED)
    assert verify_returned_receipt(inventory, "spx1").status == RECEIPT_STATUS_RECONCILED

    with pytest.raises(NotFoundError):
        verify_returned_receipt(inventory, "TIDAK-ADA")
