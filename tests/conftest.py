# tests/conftest.py
import os
import pytest
from sqlalchemy.pool import StaticPool

# --- Paksa environment test yang aman ---
os.environ.setdefault("SECRET_KEY", "test")
# Gunakan SQLite in-memory agar tidak butuh MySQL saat CI
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

# Kosongkan env MYSQL_* supaya kode tidak memaksa DSN MySQL
for k in ("MYSQL_HOST", "MYSQL_PORT", "MYSQL_USER", "MYSQL_PASSWORD", "MYSQL_DATABASE"):
    os.environ[k] = ""

from waveapp import create_app, db  # noqa: E402


@pytest.fixture()
def app():
    # Database baru untuk setiap test
    a = create_app({
        "TESTING": True,
        "WTF_CSRF_ENABLED": False,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SQLALCHEMY_ENGINE_OPTIONS": {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        },
    })
    with a.app_context():
        db.create_all()
    yield a
    with a.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()


@pytest.fixture()
def inventory(app):
    """InventoryContext dengan app context aktif selama test."""
    with app.app_context():
        yield app.extensions["inventory"]


def make_simple_product(service, name="Kaos Polos", sku="KP-01", stock=20, price=50000.0, **extra):
    payload = {"name": name, "category": "Pakaian", "sku": sku, "stock": stock, "price": price}
    payload.update(extra)
    return service.add_product(payload)


def make_variant_product(service, name="Kemeja", sku="KMJ", variants=None):
    variants = variants or [
        {"name": "S", "sku": "KMJ-S", "stock": 5, "price": 120000},
        {"name": "M", "sku": "KMJ-M", "stock": 8, "price": 125000},
    ]
    return service.add_product(
        {"name": name, "category": "Pakaian", "sku": sku, "variants": variants}
    )
