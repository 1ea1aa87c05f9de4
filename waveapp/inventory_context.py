"""Application-side mirror of the inventory.

``InventoryContext`` owns the cached item list and every other cached
collection. It never edits the cache directly: each mutator delegates to the
persistence service and then re-reads everything, so the cache only differs
from storage between a write and its refetch.
"""
import logging

from waveapp.errors import NotFoundError
from waveapp.models import RECEIPT_STATUS_RECONCILED


class InventoryContext:
    def __init__(self, service):
        self.service = service
        self.items = []
        self.categories = []
        self.all_sales = []
        self.resellers = []
        self.journal_entries = []
        self.shipping_receipts = []
        self.accessories = []
        self.loading = False

    # -- loading -------------------------------------------------------------

    def fetch_items(self):
        """Reload every cached collection; on failure keep the previous state."""
        self.loading = True
        try:
            inventory = self.service.fetch_inventory_data()
            sales = self.service.fetch_all_sales()
            resellers = self.service.get_resellers()
            journal = self.service.fetch_manual_journal_entries()
            receipts = self.service.fetch_shipping_receipts()
            accessories = self.service.fetch_accessories()
        except Exception:
            logging.exception("Gagal memuat data inventaris")
            return False
        finally:
            self.loading = False

        self.items = inventory.items
        self.categories = inventory.categories
        self.all_sales = sales
        self.resellers = resellers
        self.journal_entries = journal
        self.shipping_receipts = receipts
        self.accessories = accessories
        return True

    def fetch_resellers(self):
        try:
            self.resellers = self.service.get_resellers()
        except Exception:
            logging.exception("Gagal memuat reseller")

    def fetch_receipts(self):
        self.shipping_receipts = self.service.fetch_shipping_receipts()

    @property
    def active_items(self):
        return [item for item in self.items if not item.is_archived]

    # -- catalog -------------------------------------------------------------

    def add_item(self, data):
        item_id = self.service.add_product(data)
        self.fetch_items()
        return item_id

    def update_item(self, item_id, data):
        self.service.edit_product(item_id, data)
        self.fetch_items()

    def archive_item(self, item_id, archived=True):
        self.service.set_archived(item_id, archived)
        self.fetch_items()

    def update_stock(self, item_id, change, reason):
        level = self.service.adjust_stock(item_id, change, reason)
        self.fetch_items()
        return level

    def bulk_update_variants(self, item_id, variants, reason=None):
        if reason is None:
            self.service.edit_variants_bulk(item_id, variants)
        else:
            self.service.edit_variants_bulk(item_id, variants, reason)
        self.fetch_items()

    def update_prices(self, updates):
        self.service.update_prices(updates)
        self.fetch_items()

    def get_item(self, item_id):
        """Return the cached parent item for a product id or one of its variant ids."""
        for item in self.items:
            if item.id == item_id:
                return item
            if any(v.id == item_id for v in item.variants):
                return item
        return None

    def get_history(self, item_id):
        item = self.get_item(item_id)
        if item is not None:
            return list(item.history_for(item_id))
        for accessory in self.accessories:
            if accessory.id == item_id:
                return list(accessory.history)
        return []

    def get_product_by_sku(self, sku):
        return self.service.find_product_by_sku(sku)

    # -- accessories ---------------------------------------------------------

    def add_accessory(self, data):
        accessory_id = self.service.add_accessory(data)
        self.fetch_items()
        return accessory_id

    def update_accessory(self, accessory_id, data):
        self.service.edit_accessory(accessory_id, data)
        self.fetch_items()

    # -- sales ---------------------------------------------------------------

    def record_sale(self, sku, channel, quantity, **options):
        sale = self.service.perform_sale(sku, channel, quantity, **options)
        self.fetch_items()
        return sale

    def fetch_sales(self, channel, date):
        return self.service.get_sales_by_date(channel, date)

    def cancel_sale(self, sale_id):
        self.service.revert_sale(sale_id)
        self.fetch_items()

    def cancel_sale_transaction(self, transaction_id):
        self.service.revert_sale_by_transaction(transaction_id)
        self.fetch_items()

    # -- resellers -----------------------------------------------------------

    def add_reseller(self, name, phone=None, address=None):
        reseller_id = self.service.add_reseller(name, phone, address)
        self.fetch_resellers()
        return reseller_id

    def edit_reseller(self, reseller_id, name, phone=None, address=None):
        self.service.edit_reseller(reseller_id, name, phone, address)
        self.fetch_resellers()

    def delete_reseller(self, reseller_id):
        self.service.delete_reseller(reseller_id)
        self.fetch_resellers()

    # -- journal -------------------------------------------------------------

    def create_manual_journal_entry(self, date, description, debit_account, credit_account, amount):
        entry_id = self.service.add_manual_journal_entry(
            date, description, debit_account, credit_account, amount
        )
        self.fetch_items()
        return entry_id

    # -- shipping receipts ---------------------------------------------------

    def scan_receipt(self, receipt_number, shipping_service):
        receipt = self.service.add_shipping_receipt(receipt_number, shipping_service)
        self.fetch_receipts()
        return receipt

    def remove_receipt(self, receipt_id):
        self.service.delete_shipping_receipt(receipt_id)
        self.fetch_receipts()

    def update_receipt_status(self, receipt_id, status):
        receipt = self.service.update_shipping_receipt_status(receipt_id, status)
        self.fetch_receipts()
        if status == RECEIPT_STATUS_RECONCILED:
            logging.info("Resi %s ditandai reconciled", receipt.awb)
        return receipt

    def get_receipt(self, receipt_id):
        # Status dibaca langsung dari storage, bukan dari cache
        return self.service.get_shipping_receipt(receipt_id)

    def find_receipt(self, awb):
        receipt = self.service.find_shipping_receipt(awb)
        if receipt is None:
            raise NotFoundError(f"Resi {awb} tidak ditemukan.")
        return receipt
