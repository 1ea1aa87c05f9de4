import logging
from dataclasses import asdict, dataclass

from waveapp.errors import ValidationError

SETTINGS_KEY = "receiptSettings"
PAPER_SIZES = ("80mm", "58mm")


@dataclass(frozen=True)
class ReceiptSettings:
    shop_name: str = "WaveApp Store"
    address: str = "Jl. Inovasi No. 1, Kota Teknologi"
    phone: str = "0812-3456-7890"
    cashier_name: str = "Admin"
    paper_size: str = "80mm"

    def validate(self):
        if not (self.shop_name or "").strip():
            raise ValidationError("Nama toko wajib diisi.")
        if self.paper_size not in PAPER_SIZES:
            raise ValidationError(
                f"Ukuran kertas harus salah satu dari: {', '.join(PAPER_SIZES)}."
            )
        return self

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        defaults = cls()
        known = {key: data[key] for key in asdict(defaults) if data.get(key) is not None}
        return cls(**known)


DEFAULT_RECEIPT_SETTINGS = ReceiptSettings()


class ReceiptSettingsContext:
    """Cached receipt settings stored under one key of the settings table."""

    def __init__(self, service):
        self.service = service
        self.settings = DEFAULT_RECEIPT_SETTINGS
        self.is_loaded = False

    def load(self):
        try:
            stored = self.service.get_setting(SETTINGS_KEY)
            if stored:
                self.settings = ReceiptSettings.from_dict(stored)
        except Exception:
            logging.exception("Gagal memuat pengaturan struk")
        self.is_loaded = True
        return self.settings

    def set_settings(self, new_settings):
        new_settings.validate()
        self.service.save_setting(SETTINGS_KEY, new_settings.to_dict())
        self.settings = new_settings
        return new_settings
