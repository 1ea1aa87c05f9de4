import uuid
from datetime import datetime

from waveapp import db


RECEIPT_STATUS_PENDING = "Perlu Diproses"
RECEIPT_STATUS_SHIPPED = "shipped"
RECEIPT_STATUS_DELIVERED = "delivered"
RECEIPT_STATUS_CANCELLED = "cancelled"
RECEIPT_STATUS_RETURNED = "returned"
RECEIPT_STATUS_RECONCILED = "reconciled"


def _new_id():
    return uuid.uuid4().hex


class Product(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    name = db.Column(db.String(150), nullable=False)
    category = db.Column(db.String(100), nullable=False, index=True)
    sku = db.Column(db.String(80), nullable=True, index=True)
    image_url = db.Column(db.String(500), nullable=True)
    size = db.Column(db.String(50), nullable=True)
    has_variants = db.Column(db.Boolean, nullable=False, default=False)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    # Hanya untuk produk tanpa varian
    stock = db.Column(db.Integer, nullable=True)
    price = db.Column(db.Float, nullable=True)
    cost_price = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    variants = db.relationship(
        'Variant',
        backref='product',
        order_by='Variant.position',
        cascade='all, delete-orphan',
    )

    __table_args__ = (
        db.CheckConstraint('stock IS NULL OR stock >= 0', name='ck_product_stock_nonnegative'),
    )

    def __repr__(self):
        return f"<Product {self.name}>"


class Variant(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    product_id = db.Column(db.String(32), db.ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    sku = db.Column(db.String(80), nullable=True, index=True)
    price = db.Column(db.Float, nullable=False, default=0.0)
    cost_price = db.Column(db.Float, nullable=True)
    stock = db.Column(db.Integer, nullable=False, default=0)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint('stock >= 0', name='ck_variant_stock_nonnegative'),
    )

    def __repr__(self):
        return f"<Variant {self.name} ({self.sku})>"


class Accessory(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    name = db.Column(db.String(150), nullable=False)
    sku = db.Column(db.String(80), nullable=True, index=True)
    category = db.Column(db.String(100), nullable=True)
    stock = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Float, nullable=True)
    cost_price = db.Column(db.Float, nullable=True)

    __table_args__ = (
        db.CheckConstraint('stock >= 0', name='ck_accessory_stock_nonnegative'),
    )

    def __repr__(self):
        return f"<Accessory {self.name}>"


class StockHistory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(32), db.ForeignKey('product.id', ondelete='CASCADE'), nullable=True, index=True)
    variant_id = db.Column(db.String(32), db.ForeignKey('variant.id', ondelete='CASCADE'), nullable=True, index=True)
    accessory_id = db.Column(db.String(32), db.ForeignKey('accessory.id', ondelete='CASCADE'), nullable=True, index=True)
    date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    new_stock_level = db.Column(db.Integer, nullable=False)

    @property
    def owner_id(self):
        return self.variant_id or self.accessory_id or self.product_id


class ChannelPrice(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(32), db.ForeignKey('product.id', ondelete='CASCADE'), nullable=True)
    variant_id = db.Column(db.String(32), db.ForeignKey('variant.id', ondelete='CASCADE'), nullable=True)
    channel = db.Column(db.String(30), nullable=False)
    price = db.Column(db.Float, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('product_id', 'variant_id', 'channel', name='uq_channel_price_owner'),
    )

    @property
    def owner_id(self):
        return self.variant_id or self.product_id


class Sale(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(64), nullable=True, index=True)
    payment_method = db.Column(db.String(30), nullable=True)
    reseller_name = db.Column(db.String(120), nullable=True)
    product_id = db.Column(db.String(32), db.ForeignKey('product.id'), nullable=False)
    variant_id = db.Column(db.String(32), db.ForeignKey('variant.id'), nullable=True)
    channel = db.Column(db.String(30), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_at_sale = db.Column(db.Float, nullable=False)
    cogs_at_sale = db.Column(db.Float, nullable=False, default=0.0)
    sale_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    product = db.relationship('Product', backref=db.backref('sales', lazy=True))
    variant = db.relationship('Variant', backref=db.backref('sales', lazy=True))

    @property
    def is_cancelled(self):
        return self.cancelled_at is not None


class Reseller(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    def __repr__(self):
        return f"<Reseller {self.name}>"


class Setting(db.Model):
    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Text, nullable=False)


class ManualJournalEntry(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    description = db.Column(db.String(255), nullable=False)
    debit_account = db.Column(db.String(100), nullable=False)
    credit_account = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    type = db.Column(db.String(20), nullable=False, default='manual')


class ShippingReceipt(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    awb = db.Column(db.String(100), unique=True, nullable=False, index=True)
    channel = db.Column(db.String(50), nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    status = db.Column(db.String(50), nullable=False, default=RECEIPT_STATUS_PENDING)

    @property
    def receipt_number(self):
        return self.awb

    def __repr__(self):
        return f"<ShippingReceipt {self.awb} ({self.status})>"
