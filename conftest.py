from decimal import Decimal

import pytest

from main.models import User, Product
from stock.models import StockBalance
from stock.services import StockLedgerService


def make_user(role, email, business_name=""):
    return User.objects.create(
        first_name=email.split("@")[0].title(),
        business_name=business_name,
        email=email,
        role=role,
    )


@pytest.fixture
def manufacturer(db):
    return make_user(User.RoleChoices.MANUFACTURER, "maker@example.com", "Maker Works")


@pytest.fixture
def other_manufacturer(db):
    return make_user(User.RoleChoices.MANUFACTURER, "forge@example.com", "Forge Ltd")


@pytest.fixture
def distributor(db):
    return make_user(User.RoleChoices.DISTRIBUTOR, "dist@example.com", "Wide Distribution")


@pytest.fixture
def retailer(db):
    return make_user(User.RoleChoices.RETAILER, "shop@example.com", "Corner Shop")


@pytest.fixture
def buyer(db):
    return make_user(User.RoleChoices.BUYER, "jane@example.com")


@pytest.fixture
def product(manufacturer):
    return Product.objects.create(
        manufacturer=manufacturer,
        name="Steel Bolt",
        sku="BOLT-001",
        unit="piece",
        vat_rate=Decimal("10.00"),
    )


@pytest.fixture
def other_product(manufacturer):
    return Product.objects.create(
        manufacturer=manufacturer,
        name="Copper Wire",
        sku="WIRE-002",
        unit="meter",
        vat_rate=Decimal("0.00"),
    )


@pytest.fixture
def stock():
    """Seed a balance through the ledger: stock(owner, product, qty, price, bucket=INVENTORY)."""

    def seed(owner, product, quantity, unit_price="10.00", bucket=StockBalance.Bucket.INVENTORY):
        StockLedgerService.adjust_balance(owner.id, product.id, quantity, unit_price, bucket)
        return StockLedgerService.get_balance(owner.id, product.id, bucket)

    return seed


@pytest.fixture
def balance_of():
    """Current quantity for (owner, product, bucket), or None when no row exists."""

    def lookup(owner, product, bucket=StockBalance.Bucket.INVENTORY):
        balance = StockLedgerService.get_balance(owner.id, product.id, bucket)
        return balance.quantity if balance else None

    return lookup
