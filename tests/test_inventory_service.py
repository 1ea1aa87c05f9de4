import pytest

from waveapp import db, inventory_service as service
from waveapp.errors import DuplicateError, InsufficientStockError, NotFoundError, ValidationError
from waveapp.models import ChannelPrice, ManualJournalEntry, Product, StockHistory, Variant

from conftest import make_simple_product, make_variant_product


def _history_rows(entity_id):
    return (
        StockHistory.query.filter(
            (StockHistory.variant_id == entity_id)
            | (StockHistory.accessory_id == entity_id)
            | ((StockHistory.product_id == entity_id) & StockHistory.variant_id.is_(None))
        )
        .order_by(StockHistory.id)
        .all()
    )


def test_add_simple_product_records_initial_stock(app):
    with app.app_context():
        product_id = make_simple_product(service, stock=20)

        product = db.session.get(Product, product_id)
        assert product.stock == 20
        assert product.has_variants is False
        rows = _history_rows(product_id)
        assert [(r.change, r.reason, r.new_stock_level) for r in rows] == [
            (20, service.REASON_INITIAL_STOCK, 20)
        ]


def test_add_product_without_stock_has_no_history(app):
    with app.app_context():
        product_id = make_simple_product(service, stock=0)
        assert _history_rows(product_id) == []


def test_history_matches_stock_after_adjustments(app):
    with app.app_context():
        product_id = make_simple_product(service, stock=10)

        assert service.adjust_stock(product_id, 5, "Restock") == 15
        assert service.adjust_stock(product_id, -12, "Rusak") == 3
        assert service.adjust_stock(product_id, 7, "Restock") == 10

        rows = _history_rows(product_id)
        stock = db.session.get(Product, product_id).stock
        assert stock == 10
        assert rows[-1].new_stock_level == stock
        assert sum(r.change for r in rows) == stock
        assert [r.reason for r in rows[1:]] == ["Restock", "Rusak", "Restock"]


def test_adjust_below_zero_is_rejected_without_history(app):
    with app.app_context():
        product_id = make_simple_product(service, stock=2)

        with pytest.raises(InsufficientStockError) as excinfo:
            service.adjust_stock(product_id, -3, "Salah hitung")

        assert excinfo.value.available == 2
        assert excinfo.value.requested == 3
        assert db.session.get(Product, product_id).stock == 2
        assert len(_history_rows(product_id)) == 1


def test_adjust_zero_change_is_noop(app):
    with app.app_context():
        product_id = make_simple_product(service, stock=4)
        assert service.adjust_stock(product_id, 0, "Cek") is None
        assert len(_history_rows(product_id)) == 1


def test_adjust_requires_variant_for_variant_product(app):
    with app.app_context():
        product_id = make_variant_product(service)
        with pytest.raises(ValidationError):
            service.adjust_stock(product_id, 1, "Restock")


def test_adjust_variant_stock(app):
    with app.app_context():
        make_variant_product(service)
        variant = Variant.query.filter_by(sku="KMJ-M").one()

        assert service.adjust_stock(variant.id, -3, "Display") == 5
        rows = _history_rows(variant.id)
        assert rows[-1].change == -3
        assert rows[-1].new_stock_level == 5
        assert rows[-1].product_id == variant.product_id


def test_adjust_unknown_item(app):
    with app.app_context():
        with pytest.raises(NotFoundError):
            service.adjust_stock("tidak-ada", 1, "Restock")


def test_sku_is_unique_across_products_and_variants(app):
    with app.app_context():
        make_variant_product(service)
        with pytest.raises(DuplicateError):
            make_simple_product(service, sku="KMJ-S")
        with pytest.raises(DuplicateError):
            make_simple_product(service, sku="KMJ")
        assert Product.query.count() == 1


def test_duplicate_sku_inside_payload(app):
    with app.app_context():
        with pytest.raises(DuplicateError):
            make_variant_product(service, variants=[
                {"name": "S", "sku": "X-1", "stock": 1, "price": 1},
                {"name": "M", "sku": "X-1", "stock": 1, "price": 1},
            ])


def test_edit_product_records_stock_difference(app):
    with app.app_context():
        product_id = make_simple_product(service, stock=10)

        service.edit_product(product_id, {
            "name": "Kaos Polos Hitam",
            "category": "Pakaian",
            "sku": "KP-01",
            "stock": 6,
            "price": 55000,
        })

        product = db.session.get(Product, product_id)
        assert product.name == "Kaos Polos Hitam"
        assert product.stock == 6
        last = _history_rows(product_id)[-1]
        assert (last.change, last.reason, last.new_stock_level) == (
            -4, service.REASON_EDIT_ADJUSTMENT, 6
        )


def test_edit_product_cannot_switch_stock_kind(app):
    with app.app_context():
        product_id = make_simple_product(service)
        with pytest.raises(ValidationError):
            service.edit_product(product_id, {
                "name": "Kaos",
                "category": "Pakaian",
                "variants": [{"name": "S", "stock": 1, "price": 1}],
            })


def test_edit_product_adds_new_variant(app):
    with app.app_context():
        product_id = make_variant_product(service)
        item = service.find_product_by_sku("KMJ")
        variants = [
            {"id": v.id, "name": v.name, "sku": v.sku, "stock": v.stock, "price": v.price}
            for v in item.variants
        ]
        variants.append({"name": "L", "sku": "KMJ-L", "stock": 4, "price": 130000})

        service.edit_product(product_id, {
            "name": "Kemeja", "category": "Pakaian", "sku": "KMJ", "variants": variants,
        })

        product = db.session.get(Product, product_id)
        assert [v.name for v in product.variants] == ["S", "M", "L"]
        new_variant = product.variants[-1]
        assert _history_rows(new_variant.id)[0].reason == service.REASON_INITIAL_STOCK


def test_bulk_variant_update_writes_one_history_per_changed_variant(app):
    with app.app_context():
        product_id = make_variant_product(service)
        small = Variant.query.filter_by(sku="KMJ-S").one()
        medium = Variant.query.filter_by(sku="KMJ-M").one()

        service.edit_variants_bulk(product_id, [
            {"id": small.id, "stock": 9},
            {"id": medium.id, "stock": 8},
        ], "Stock opname")

        small_rows = _history_rows(small.id)
        assert small_rows[-1].change == 4
        assert small_rows[-1].reason == "Stock opname"
        assert len(_history_rows(medium.id)) == 1


def test_bulk_variant_update_rejects_foreign_variant(app):
    with app.app_context():
        first = make_variant_product(service)
        make_variant_product(service, name="Celana", sku="CLN", variants=[
            {"name": "30", "sku": "CLN-30", "stock": 2, "price": 150000},
        ])
        foreign = Variant.query.filter_by(sku="CLN-30").one()

        with pytest.raises(NotFoundError):
            service.edit_variants_bulk(first, [{"id": foreign.id, "stock": 1}])
        assert db.session.get(Variant, foreign.id).stock == 2


def test_bulk_variant_update_history_for_every_changed_variant(app):
    with app.app_context():
        product_id = make_variant_product(service)
        small = Variant.query.filter_by(sku="KMJ-S").one()
        medium = Variant.query.filter_by(sku="KMJ-M").one()
        before = StockHistory.query.count()

        service.edit_variants_bulk(product_id, [
            {"id": small.id, "stock": 6},
            {"id": medium.id, "stock": 10},
        ], "recount")

        rows = StockHistory.query.order_by(StockHistory.id).all()[before:]
        assert len(rows) == 2
        assert [(r.variant_id, r.change, r.new_stock_level) for r in rows] == [
            (small.id, 1, 6),
            (medium.id, 2, 10),
        ]
        assert {r.reason for r in rows} == {"recount"}


def test_bulk_variant_update_can_swap_skus(app):
    with app.app_context():
        product_id = make_variant_product(service)
        small = Variant.query.filter_by(sku="KMJ-S").one()
        medium = Variant.query.filter_by(sku="KMJ-M").one()

        service.edit_variants_bulk(product_id, [
            {"id": small.id, "stock": 5, "sku": "KMJ-M"},
            {"id": medium.id, "stock": 8, "sku": "KMJ-S"},
        ], "fix label")

        assert db.session.get(Variant, small.id).sku == "KMJ-M"
        assert db.session.get(Variant, medium.id).sku == "KMJ-S"
        assert service.find_product_by_sku("KMJ-S").variants[0].id == medium.id


def test_bulk_variant_update_sku_clash_outside_edit_is_rejected(app):
    with app.app_context():
        product_id = make_variant_product(service)
        make_simple_product(service, sku="KP-01")
        small = Variant.query.filter_by(sku="KMJ-S").one()
        medium = Variant.query.filter_by(sku="KMJ-M").one()

        with pytest.raises(DuplicateError):
            service.edit_variants_bulk(product_id, [{"id": small.id, "stock": 5, "sku": "KMJ-M"}])
        with pytest.raises(DuplicateError):
            service.edit_variants_bulk(product_id, [{"id": small.id, "stock": 5, "sku": "KP-01"}])
        with pytest.raises(DuplicateError):
            service.edit_variants_bulk(product_id, [
                {"id": small.id, "stock": 5, "sku": "KMJ-X"},
                {"id": medium.id, "stock": 8, "sku": "KMJ-X"},
            ])
        assert db.session.get(Variant, small.id).sku == "KMJ-S"


def test_edit_product_can_swap_variant_skus(app):
    with app.app_context():
        product_id = make_variant_product(service)
        item = service.find_product_by_sku("KMJ")
        small, medium = item.variants

        service.edit_product(product_id, {
            "name": "Kemeja", "category": "Pakaian", "sku": "KMJ",
            "variants": [
                {"id": small.id, "name": "S", "sku": "KMJ-M", "stock": 5, "price": 120000},
                {"id": medium.id, "name": "M", "sku": "KMJ-S", "stock": 8, "price": 125000},
            ],
        })

        assert db.session.get(Variant, small.id).sku == "KMJ-M"
        assert db.session.get(Variant, medium.id).sku == "KMJ-S"
        assert len(_history_rows(small.id)) == 1


def test_find_product_by_variant_sku_returns_parent_with_one_variant(app):
    with app.app_context():
        product_id = make_variant_product(service)

        item = service.find_product_by_sku("KMJ-M")
        assert item.id == product_id
        assert [v.sku for v in item.variants] == ["KMJ-M"]

        parent = service.find_product_by_sku("KMJ")
        assert len(parent.variants) == 2
        assert service.find_product_by_sku("TIDAK-ADA") is None


def test_fetch_inventory_data_snapshots(app):
    with app.app_context():
        make_simple_product(service, stock=3)
        make_variant_product(service)
        service.set_archived(make_simple_product(service, name="Topi", sku="TP-1"), True)

        data = service.fetch_inventory_data()
        assert data.categories == ["Pakaian"]
        by_name = {item.name: item for item in data.items}
        assert by_name["Kemeja"].has_variants
        assert by_name["Kemeja"].total_stock == 13
        assert by_name["Kaos Polos"].stocking.stock == 3
        assert by_name["Topi"].is_archived


def test_update_prices_shares_online_price_and_clears_direct(app):
    with app.app_context():
        product_id = make_simple_product(service)
        service.update_prices([{
            "id": product_id,
            "type": "product",
            "channel_prices": [
                {"channel": "pos", "price": 48000},
                {"channel": "Shopee", "price": 60000},
            ],
        }])

        prices = {p.channel: p.price for p in ChannelPrice.query.filter_by(product_id=product_id)}
        assert prices == {"pos": 48000, "shopee": 60000, "tiktok": 60000, "lazada": 60000}

        service.update_prices([{"id": product_id, "type": "product", "channel_prices": []}])
        channels = {p.channel for p in ChannelPrice.query.filter_by(product_id=product_id)}
        assert "pos" not in channels
        assert "shopee" in channels


def test_first_cost_price_on_stocked_item_creates_journal(app):
    with app.app_context():
        product_id = make_simple_product(service, stock=10)

        service.update_prices([{"id": product_id, "type": "product", "cost_price": 30000}])
        service.update_prices([{"id": product_id, "type": "product", "cost_price": 32000}])

        entries = ManualJournalEntry.query.all()
        assert len(entries) == 1
        assert entries[0].type == "auto"
        assert entries[0].amount == 300000
        assert entries[0].debit_account == service.ACCOUNT_INVENTORY


def test_update_prices_unknown_entity(app):
    with app.app_context():
        with pytest.raises(NotFoundError):
            service.update_prices([{"id": "nope", "type": "variant", "price": 1}])


def test_accessory_stock_uses_the_same_primitive(app):
    with app.app_context():
        accessory_id = service.add_accessory({"name": "Hanger", "stock": 30})

        assert service.adjust_stock(accessory_id, -5, "Dipakai") == 25
        accessories = service.fetch_accessories()
        assert accessories[0].stock == 25
        assert [h.change for h in accessories[0].history] == [30, -5]


def test_journal_entry_validates_accounts(app):
    with app.app_context():
        with pytest.raises(ValidationError):
            service.add_manual_journal_entry(None, "Sewa", "Biaya Sewa", "Biaya Sewa", 100)
        with pytest.raises(ValidationError):
            service.add_manual_journal_entry(None, "Sewa", "Akun Fiktif", "Modal Disetor", 100)

        service.add_manual_journal_entry(None, "Sewa toko", "Biaya Sewa", "Modal Disetor", 2500000)
        entries = service.fetch_manual_journal_entries()
        assert entries[0].description == "Sewa toko"
        assert entries[0].type == "manual"


def test_reseller_names_are_unique(app):
    with app.app_context():
        reseller_id = service.add_reseller("Bu Ani", "0812")
        with pytest.raises(DuplicateError):
            service.add_reseller("Bu Ani")
        service.edit_reseller(reseller_id, "Bu Ani Jaya", None, "Bandung")
        assert [r.name for r in service.get_resellers()] == ["Bu Ani Jaya"]
        service.delete_reseller(reseller_id)
        assert service.get_resellers() == []
