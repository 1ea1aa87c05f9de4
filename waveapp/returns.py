"""Return processing for shipping receipts.

Scanned SKUs are accumulated in memory; nothing is persisted until
``ReturnSession.finalize`` puts the stock back and marks the receipt
``reconciled``. The two steps are separate writes: when the status update
fails after stock was restored, the error is logged and re-raised and the
receipt keeps its old status.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from waveapp.errors import NotFoundError, ReceiptStateError, ValidationError
from waveapp.models import RECEIPT_STATUS_RECONCILED, RECEIPT_STATUS_RETURNED


@dataclass
class ReturnLine:
    entity_id: str
    product_id: str
    name: str
    quantity: int
    variant_id: Optional[str] = None
    sku: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.entity_id,
            "productId": self.product_id,
            "variantId": self.variant_id,
            "name": self.name,
            "sku": self.sku,
            "returnQuantity": self.quantity,
        }


class ReturnSession:
    def __init__(self, context, receipt):
        self.context = context
        self.receipt = receipt
        self._lines = {}

    @property
    def items(self):
        return list(self._lines.values())

    @property
    def reason(self):
        return f"Return dari resi #{self.receipt.awb}"

    def scan(self, sku, variant_id=None):
        item = self.context.get_product_by_sku(sku)
        if item is None:
            raise NotFoundError(f"SKU {sku} tidak ditemukan.")

        if item.has_variants:
            if variant_id:
                variant = item.find_variant(variant_id)
                if variant is None:
                    raise NotFoundError(f"Varian {variant_id} tidak cocok dengan SKU {sku}.")
            elif len(item.variants) == 1:
                variant = item.variants[0]
            else:
                raise ValidationError(f"SKU {sku} memiliki beberapa varian; pilih salah satu.")
            key, name, line_sku = variant.id, f"{item.name} - {variant.name}", variant.sku
            line_variant = variant.id
        else:
            key, name, line_sku, line_variant = item.id, item.name, item.sku, None

        line = self._lines.get(key)
        if line is None:
            line = ReturnLine(entity_id=key, product_id=item.id, name=name, quantity=0,
                              variant_id=line_variant, sku=line_sku)
            self._lines[key] = line
        line.quantity += 1
        return line

    def set_quantity(self, entity_id, quantity):
        if entity_id not in self._lines:
            raise NotFoundError(f"Item {entity_id} tidak ada di daftar retur.")
        try:
            quantity = max(0, int(quantity))
        except (TypeError, ValueError):
            raise ValidationError(f"Jumlah retur tidak valid: {quantity}") from None
        if quantity == 0:
            del self._lines[entity_id]
        else:
            self._lines[entity_id].quantity = quantity

    def finalize(self):
        if not self._lines:
            raise ValidationError("Daftar retur masih kosong.")
        current = self.context.get_receipt(self.receipt.id)
        if current.status == RECEIPT_STATUS_RECONCILED:
            raise ReceiptStateError(f"Resi {current.awb} sudah direkonsiliasi.")

        reason = self.reason
        for line in self.items:
            self.context.update_stock(line.entity_id, line.quantity, reason)

        try:
            receipt = self.context.update_receipt_status(current.id, RECEIPT_STATUS_RECONCILED)
        except Exception:
            logging.exception(
                "Stok retur resi %s sudah dikembalikan tetapi status resi gagal diperbarui",
                current.awb,
            )
            raise

        logging.info("Retur resi %s selesai: %s jenis item", current.awb, len(self._lines))
        self._lines.clear()
        self.receipt = receipt
        return receipt


def verify_returned_receipt(context, awb):
    """Mark a receipt already flagged ``returned`` as ``reconciled``."""
    receipt = context.find_receipt(awb)
    if receipt.status != RECEIPT_STATUS_RETURNED:
        raise ReceiptStateError(
            f"Resi {receipt.awb} berstatus {receipt.status}, bukan {RECEIPT_STATUS_RETURNED}."
        )
    return context.update_receipt_status(receipt.id, RECEIPT_STATUS_RECONCILED)
