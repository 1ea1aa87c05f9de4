from datetime import datetime

import pytest

from waveapp import db, inventory_service as service
from waveapp.errors import InsufficientStockError, NotFoundError, SaleAlreadyCancelledError
from waveapp.models import Product, Sale, StockHistory, Variant

from conftest import make_simple_product, make_variant_product


def test_sale_and_cancel_restore_stock_exactly_once(app):
    with app.app_context():
        product_id = make_simple_product(service, sku="A1", stock=20)

        sale = service.perform_sale("A1", "pos", 3)
        assert db.session.get(Product, product_id).stock == 17
        assert sale.price_at_sale == 50000.0
        assert sale.sku == "A1"

        service.revert_sale(sale.id)
        assert db.session.get(Product, product_id).stock == 20
        assert service.fetch_all_sales() == []
        assert db.session.get(Sale, sale.id).is_cancelled

        with pytest.raises(SaleAlreadyCancelledError):
            service.revert_sale(sale.id)
        assert db.session.get(Product, product_id).stock == 20

        reasons = [
            row.reason
            for row in StockHistory.query.filter_by(product_id=product_id).order_by(StockHistory.id)
        ]
        assert reasons == [service.REASON_INITIAL_STOCK, "Sale (pos)", "Cancelled Sale (pos)"]


def test_sale_larger_than_stock_is_rejected(app):
    with app.app_context():
        product_id = make_simple_product(service, sku="A1", stock=2)

        with pytest.raises(InsufficientStockError):
            service.perform_sale("A1", "pos", 3)

        assert db.session.get(Product, product_id).stock == 2
        assert Sale.query.count() == 0


def test_sale_of_variant_uses_channel_price_and_cost(app):
    with app.app_context():
        make_variant_product(service)
        variant = Variant.query.filter_by(sku="KMJ-S").one()
        service.update_prices([{
            "id": variant.id,
            "type": "variant",
            "cost_price": 70000,
            "channel_prices": [{"channel": "shopee", "price": 135000}],
        }])

        sale = service.perform_sale("KMJ-S", "TikTok", 2, reseller_name="Bu Ani")

        assert sale.channel == "tiktok"
        assert sale.variant_id == variant.id
        assert sale.price_at_sale == 135000
        assert sale.cogs_at_sale == 70000
        assert sale.variant_name == "S"
        assert db.session.get(Variant, variant.id).stock == 3
        last = StockHistory.query.filter_by(variant_id=variant.id).order_by(StockHistory.id.desc()).first()
        assert last.reason == "Sale (tiktok) - Bu Ani"


def test_parent_sku_of_variant_product_cannot_be_sold(app):
    with app.app_context():
        make_variant_product(service)
        with pytest.raises(NotFoundError):
            service.perform_sale("KMJ", "pos", 1)


def test_cancel_transaction_restores_every_line(app):
    with app.app_context():
        simple_id = make_simple_product(service, sku="A1", stock=10)
        make_variant_product(service)
        service.perform_sale("A1", "pos", 2, transaction_id="TRX-1")
        service.perform_sale("KMJ-M", "pos", 3, transaction_id="TRX-1")

        service.revert_sale_by_transaction("TRX-1")

        assert db.session.get(Product, simple_id).stock == 10
        assert Variant.query.filter_by(sku="KMJ-M").one().stock == 8
        with pytest.raises(SaleAlreadyCancelledError):
            service.revert_sale_by_transaction("TRX-1")


def test_cancel_single_sale_through_transaction_prefix(app):
    with app.app_context():
        product_id = make_simple_product(service, sku="A1", stock=5)
        sale = service.perform_sale("A1", "reseller", 1)

        service.revert_sale_by_transaction(f"sale-{sale.id}")
        assert db.session.get(Product, product_id).stock == 5


def test_sales_by_date_and_channel(app):
    with app.app_context():
        make_simple_product(service, sku="A1", stock=10)
        service.perform_sale("A1", "pos", 1, sale_date=datetime(2024, 5, 1, 10, 0))
        service.perform_sale("A1", "pos", 2, sale_date=datetime(2024, 5, 2, 9, 0))
        service.perform_sale("A1", "shopee", 1, sale_date=datetime(2024, 5, 1, 23, 59))

        sales = service.get_sales_by_date("POS", datetime(2024, 5, 1).date())
        assert [s.quantity for s in sales] == [1]
        assert len(service.get_sales_by_date("shopee", datetime(2024, 5, 1))) == 1


def test_unknown_sale_cannot_be_cancelled(app):
    with app.app_context():
        with pytest.raises(NotFoundError):
            service.revert_sale(999)
