import logging

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from waveapp import csrf
from waveapp.errors import InventoryError, NotFoundError, ValidationError
from waveapp.finance import balance_sheet, general_ledger
from waveapp.forms import ReceiptScanForm, ReceiptSettingsForm, SaleForm, StockAdjustmentForm
from waveapp.importer import import_products, read_product_file
from waveapp.insights import build_stock_insight_input, daily_sales_summary, generate_stock_insights
from waveapp.receipt_settings import ReceiptSettings
from waveapp.returns import ReturnSession, verify_returned_receipt
from waveapp.time_utils import local_now, parse_date

bp = Blueprint("main", __name__, url_prefix="/api")
# API JSON dipakai oleh frontend SPA, tidak memakai token CSRF form
csrf.exempt(bp)


def _inventory():
    return current_app.extensions["inventory"]


def _receipt_settings():
    return current_app.extensions["receipt_settings"]


def _payload():
    if not request.is_json:
        raise ValidationError("Gunakan JSON payload.")
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Payload JSON tidak valid.")
    return payload


def _truthy(value):
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _validated(form_cls):
    form = form_cls(meta={"csrf": False})
    if not form.validate():
        messages = [
            f"{getattr(form, name).label.text}: {errors[0]}"
            for name, errors in form.errors.items()
        ]
        raise ValidationError("; ".join(messages))
    return form


def _ok(message=None, status=200, **data):
    body = {"success": True}
    if message:
        body["message"] = message
    body.update(data)
    return jsonify(body), status


def _refreshed():
    inventory = _inventory()
    inventory.fetch_items()
    return inventory


@bp.errorhandler(InventoryError)
def _handle_inventory_error(exc):
    return jsonify({"success": False, "message": str(exc)}), exc.http_status


@bp.errorhandler(Exception)
def _handle_unexpected_error(exc):
    if isinstance(exc, HTTPException):
        return jsonify({"success": False, "message": exc.description}), exc.code
    logging.exception("Gagal memproses %s %s", request.method, request.path)
    return jsonify({"success": False, "message": "Terjadi kesalahan pada server."}), 500


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

@bp.route("/inventory", methods=["GET"])
def list_inventory():
    inventory = _refreshed()
    include_archived = _truthy(request.args.get("include_archived"))
    items = inventory.items if include_archived else inventory.active_items
    return jsonify({
        "items": [item.to_dict() for item in items],
        "categories": inventory.categories,
    })


@bp.route("/inventory", methods=["POST"])
def create_inventory_item():
    item_id = _inventory().add_item(_payload())
    return _ok("Produk berhasil ditambahkan.", 201, id=item_id)


@bp.route("/inventory/<item_id>", methods=["GET"])
def get_inventory_item(item_id):
    item = _refreshed().get_item(item_id)
    if item is None:
        raise NotFoundError(f"Produk dengan ID {item_id} tidak ditemukan.")
    return jsonify(item.to_dict())


@bp.route("/inventory/<item_id>", methods=["PUT"])
def update_inventory_item(item_id):
    _inventory().update_item(item_id, _payload())
    return _ok("Produk berhasil diperbarui.")


@bp.route("/inventory/<item_id>/archive", methods=["POST"])
def archive_inventory_item(item_id):
    payload = request.get_json(silent=True) or {}
    archived = _truthy(payload.get("archived", True))
    _inventory().archive_item(item_id, archived)
    return _ok("Produk diarsipkan." if archived else "Produk dikembalikan dari arsip.")


@bp.route("/inventory/<item_id>/stock", methods=["POST"])
def adjust_inventory_stock(item_id):
    form = _validated(StockAdjustmentForm)
    level = _inventory().update_stock(item_id, form.change.data, str(form.reason.data).strip())
    return _ok("Stok berhasil diperbarui.", newStockLevel=level)


@bp.route("/inventory/<item_id>/variants", methods=["PUT"])
def bulk_update_variants(item_id):
    payload = _payload()
    variants = payload.get("variants")
    if not isinstance(variants, list) or not variants:
        raise ValidationError("Daftar varian wajib diisi.")
    _inventory().bulk_update_variants(item_id, variants, payload.get("reason"))
    return _ok("Varian berhasil diperbarui.")


@bp.route("/inventory/<item_id>/history", methods=["GET"])
def inventory_history(item_id):
    history = _refreshed().get_history(item_id)
    return jsonify({"history": [entry.to_dict() for entry in history]})


@bp.route("/inventory/sku/<path:sku>", methods=["GET"])
def inventory_by_sku(sku):
    item = _inventory().get_product_by_sku(sku)
    if item is None:
        raise NotFoundError(f"SKU {sku} tidak ditemukan.")
    return jsonify(item.to_dict())


@bp.route("/inventory/import", methods=["POST"])
def import_inventory():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("Pilih file Excel/CSV terlebih dahulu.")
    try:
        df = read_product_file(upload.read(), upload.filename)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError(f"File tidak dapat dibaca: {exc}")
    inventory = _inventory()
    result = import_products(df, inventory.service)
    inventory.fetch_items()
    return _ok(f"{result['created']} produk berhasil diimpor.", **result)


@bp.route("/prices", methods=["POST"])
def update_prices():
    updates = _payload().get("updates")
    if not isinstance(updates, list):
        raise ValidationError("Daftar harga wajib berupa list.")
    _inventory().update_prices(updates)
    return _ok("Harga berhasil diperbarui.")


# ---------------------------------------------------------------------------
# Accessories
# ---------------------------------------------------------------------------

@bp.route("/accessories", methods=["GET"])
def list_accessories():
    inventory = _refreshed()
    return jsonify({"accessories": [a.to_dict() for a in inventory.accessories]})


@bp.route("/accessories", methods=["POST"])
def create_accessory():
    accessory_id = _inventory().add_accessory(_payload())
    return _ok("Aksesoris berhasil ditambahkan.", 201, id=accessory_id)


@bp.route("/accessories/<accessory_id>", methods=["PUT"])
def update_accessory(accessory_id):
    _inventory().update_accessory(accessory_id, _payload())
    return _ok("Aksesoris berhasil diperbarui.")


@bp.route("/accessories/<accessory_id>/stock", methods=["POST"])
def adjust_accessory_stock(accessory_id):
    form = _validated(StockAdjustmentForm)
    level = _inventory().update_stock(accessory_id, form.change.data, str(form.reason.data).strip())
    return _ok("Stok aksesoris berhasil diperbarui.", newStockLevel=level)


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

@bp.route("/sales", methods=["GET"])
def list_sales():
    channel = request.args.get("channel")
    day = parse_date(request.args.get("date"))
    inventory = _inventory()
    if channel:
        sales = inventory.fetch_sales(channel, day or local_now().date())
    else:
        sales = _refreshed().all_sales
    return jsonify({"sales": [sale.to_dict() for sale in sales]})


@bp.route("/sales", methods=["POST"])
def create_sale():
    form = _validated(SaleForm)
    sale = _inventory().record_sale(
        str(form.sku.data).strip(),
        form.channel.data,
        form.quantity.data,
        transaction_id=form.transaction_id.data,
        payment_method=form.payment_method.data,
        reseller_name=form.reseller_name.data,
    )
    return _ok("Penjualan berhasil dicatat.", 201, sale=sale.to_dict())


@bp.route("/sales/<int:sale_id>/cancel", methods=["POST"])
def cancel_sale(sale_id):
    _inventory().cancel_sale(sale_id)
    return _ok(f"Penjualan #{sale_id} dibatalkan.")


@bp.route("/transactions/<transaction_id>/cancel", methods=["POST"])
def cancel_transaction(transaction_id):
    _inventory().cancel_sale_transaction(transaction_id)
    return _ok(f"Transaksi {transaction_id} dibatalkan.")


# ---------------------------------------------------------------------------
# Resellers
# ---------------------------------------------------------------------------

@bp.route("/resellers", methods=["GET"])
def list_resellers():
    inventory = _inventory()
    inventory.fetch_resellers()
    return jsonify({"resellers": [r.to_dict() for r in inventory.resellers]})


@bp.route("/resellers", methods=["POST"])
def create_reseller():
    payload = _payload()
    reseller_id = _inventory().add_reseller(
        payload.get("name"), payload.get("phone"), payload.get("address")
    )
    return _ok("Reseller berhasil ditambahkan.", 201, id=reseller_id)


@bp.route("/resellers/<int:reseller_id>", methods=["PUT"])
def update_reseller(reseller_id):
    payload = _payload()
    _inventory().edit_reseller(
        reseller_id, payload.get("name"), payload.get("phone"), payload.get("address")
    )
    return _ok("Reseller berhasil diperbarui.")


@bp.route("/resellers/<int:reseller_id>", methods=["DELETE"])
def remove_reseller(reseller_id):
    _inventory().delete_reseller(reseller_id)
    return _ok("Reseller dihapus.")


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------

@bp.route("/journal", methods=["GET"])
def list_journal():
    inventory = _refreshed()
    return jsonify({
        "entries": [entry.to_dict() for entry in inventory.journal_entries],
        "accounts": inventory.service.CHART_OF_ACCOUNTS,
    })


@bp.route("/journal", methods=["POST"])
def create_journal_entry():
    payload = _payload()
    raw_date = payload.get("date")
    entry_date = parse_date(raw_date)
    if raw_date and entry_date is None:
        raise ValidationError("Format tanggal harus YYYY-MM-DD.")
    entry_id = _inventory().create_manual_journal_entry(
        entry_date,
        payload.get("description"),
        payload.get("debit_account"),
        payload.get("credit_account"),
        payload.get("amount"),
    )
    return _ok("Jurnal berhasil disimpan.", 201, id=entry_id)


# ---------------------------------------------------------------------------
# Shipping receipts and returns
# ---------------------------------------------------------------------------

@bp.route("/receipts", methods=["GET"])
def list_receipts():
    start = parse_date(request.args.get("start"))
    end = parse_date(request.args.get("end"))
    status = request.args.get("status")
    receipts = _inventory().service.fetch_shipping_receipts(start, end, status)
    return jsonify({"receipts": [r.to_dict() for r in receipts]})


@bp.route("/receipts", methods=["POST"])
def scan_receipt():
    form = _validated(ReceiptScanForm)
    receipt = _inventory().scan_receipt(form.awb.data, form.channel.data)
    return _ok(f"Resi {receipt.awb} tersimpan.", 201, receipt=receipt.to_dict())


@bp.route("/receipts/<int:receipt_id>", methods=["DELETE"])
def delete_receipt(receipt_id):
    _inventory().remove_receipt(receipt_id)
    return _ok("Resi dihapus.")


@bp.route("/receipts/<int:receipt_id>/status", methods=["PUT"])
def update_receipt_status(receipt_id):
    receipt = _inventory().update_receipt_status(receipt_id, _payload().get("status"))
    return _ok("Status resi diperbarui.", receipt=receipt.to_dict())


@bp.route("/receipts/<int:receipt_id>/returns", methods=["POST"])
def process_return(receipt_id):
    items = _payload().get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Daftar barang retur wajib diisi.")

    inventory = _inventory()
    session = ReturnSession(inventory, inventory.get_receipt(receipt_id))
    for raw in items:
        line = session.scan(raw.get("sku"), raw.get("variant_id"))
        if raw.get("quantity") is not None:
            session.set_quantity(line.entity_id, raw.get("quantity"))
    returned = [line.to_dict() for line in session.items]
    receipt = session.finalize()
    return _ok("Retur berhasil diproses.", receipt=receipt.to_dict(), items=returned)


@bp.route("/receipts/verify-return", methods=["POST"])
def verify_return():
    receipt = verify_returned_receipt(_inventory(), _payload().get("awb"))
    return _ok(f"Resi {receipt.awb} sudah direkonsiliasi.", receipt=receipt.to_dict())


# ---------------------------------------------------------------------------
# Settings, reports, insights
# ---------------------------------------------------------------------------

@bp.route("/settings/receipt", methods=["GET"])
def get_receipt_settings():
    return jsonify(_receipt_settings().load().to_dict())


@bp.route("/settings/receipt", methods=["PUT"])
def save_receipt_settings():
    form = _validated(ReceiptSettingsForm)
    settings = ReceiptSettings(
        shop_name=form.shop_name.data.strip(),
        address=(form.address.data or "").strip(),
        phone=(form.phone.data or "").strip(),
        cashier_name=(form.cashier_name.data or "").strip(),
        paper_size=form.paper_size.data,
    )
    _receipt_settings().set_settings(settings)
    return _ok("Pengaturan struk disimpan.", settings=settings.to_dict())


@bp.route("/reports/daily-sales", methods=["GET"])
def daily_sales_report():
    sales = _refreshed().all_sales
    return jsonify({"rows": daily_sales_summary(sales, request.args.get("channel"))})


@bp.route("/reports/general-ledger", methods=["GET"])
def general_ledger_report():
    inventory = _refreshed()
    accounts = general_ledger(
        inventory.all_sales,
        inventory.journal_entries,
        inventory.items,
        account=request.args.get("account"),
    )
    return jsonify({"accounts": accounts})


@bp.route("/reports/balance-sheet", methods=["GET"])
def balance_sheet_report():
    inventory = _refreshed()
    return jsonify(balance_sheet(inventory.items, inventory.all_sales, inventory.journal_entries))


def _insight_input():
    payload = request.get_json(silent=True) or {}
    try:
        days = int(payload.get("days") or request.args.get("days") or 30)
    except (TypeError, ValueError):
        raise ValidationError("Jumlah hari harus berupa angka.")
    inventory = _refreshed()
    return build_stock_insight_input(
        inventory.items,
        inventory.all_sales,
        days=days,
        additional_context=payload.get("additional_context"),
    )


@bp.route("/insights/input", methods=["GET"])
def stock_insight_input():
    return jsonify(_insight_input().to_dict())


@bp.route("/insights", methods=["POST"])
def stock_insights():
    insight_input = _insight_input()
    result = generate_stock_insights(
        insight_input, current_app.config.get("STOCK_INSIGHTS_GENERATOR")
    )
    return _ok(input=insight_input.to_dict(), **result)
