"""Error taxonomy for inventory and sales operations.

Every error derives from ``ValueError`` so request handlers can keep the
``except ValueError`` boundary for user-facing messages.
"""


class InventoryError(ValueError):
    http_status = 400


class ValidationError(InventoryError):
    pass


class InsufficientStockError(ValidationError):
    def __init__(self, name, available, requested):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Stok {name} tidak mencukupi. Sisa {available}, diminta {requested}."
        )


class NotFoundError(InventoryError):
    http_status = 404


class DuplicateError(InventoryError):
    http_status = 409


class SaleAlreadyCancelledError(InventoryError):
    http_status = 409


class ReceiptStateError(InventoryError):
    http_status = 409
