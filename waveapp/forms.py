from flask_wtf import FlaskForm
from wtforms import IntegerField, SelectField, StringField, SubmitField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, ValidationError

from waveapp.receipt_settings import PAPER_SIZES

SALE_CHANNELS = ("pos", "reseller", "shopee", "tiktok", "lazada")


class StockAdjustmentForm(FlaskForm):
    change = IntegerField('Perubahan Stok')
    reason = StringField('Alasan', validators=[DataRequired(), Length(max=255)])
    submit = SubmitField('Simpan')

    def validate_change(self, field):
        if field.data is None:
            raise ValidationError('Perubahan stok wajib diisi.')


class SaleForm(FlaskForm):
    sku = StringField('SKU', validators=[DataRequired(), Length(max=64)])
    channel = SelectField('Channel', choices=[(c, c) for c in SALE_CHANNELS],
                          filters=[lambda v: v.strip().lower() if isinstance(v, str) else v])
    quantity = IntegerField('Jumlah', validators=[DataRequired(), NumberRange(min=1)])
    transaction_id = StringField('ID Transaksi', validators=[Optional(), Length(max=64)])
    payment_method = StringField('Metode Bayar', validators=[Optional(), Length(max=32)])
    reseller_name = StringField('Reseller', validators=[Optional(), Length(max=120)])
    submit = SubmitField('Jual')


class ReceiptScanForm(FlaskForm):
    awb = StringField('Nomor Resi', validators=[DataRequired(), Length(max=64)])
    channel = StringField('Jasa Pengiriman', validators=[DataRequired(), Length(max=64)])
    submit = SubmitField('Scan')


class ReceiptSettingsForm(FlaskForm):
    shop_name = StringField('Nama Toko', validators=[DataRequired(), Length(max=120)])
    address = StringField('Alamat', validators=[Optional(), Length(max=255)])
    phone = StringField('Telepon', validators=[Optional(), Length(max=32)])
    cashier_name = StringField('Nama Kasir', validators=[Optional(), Length(max=120)])
    paper_size = SelectField('Ukuran Kertas', choices=[(p, p) for p in PAPER_SIZES])
    submit = SubmitField('Simpan')
