import pytest
from django.core.exceptions import ImproperlyConfigured

from main.models import User
from stock.models import StockBalance
from stock.services import roles


Role = User.RoleChoices


def test_every_role_has_an_entry():
    assert set(roles.CAPABILITIES) == set(Role.values)


@pytest.mark.parametrize("seller, buyer, allowed", [
    (Role.MANUFACTURER, Role.DISTRIBUTOR, True),
    (Role.MANUFACTURER, Role.RETAILER, True),
    (Role.MANUFACTURER, Role.BUYER, True),
    (Role.MANUFACTURER, Role.MANUFACTURER, False),
    (Role.DISTRIBUTOR, Role.RETAILER, True),
    (Role.DISTRIBUTOR, Role.MANUFACTURER, False),
    (Role.RETAILER, Role.BUYER, True),
    (Role.RETAILER, Role.DISTRIBUTOR, False),
    (Role.BUYER, Role.RETAILER, False),
])
def test_can_sell_to(seller, buyer, allowed):
    assert roles.can_sell_to(seller, buyer) is allowed


@pytest.mark.parametrize("buyer, seller, allowed", [
    (Role.MANUFACTURER, Role.MANUFACTURER, True),
    (Role.MANUFACTURER, Role.DISTRIBUTOR, True),
    (Role.MANUFACTURER, Role.RETAILER, False),
    (Role.DISTRIBUTOR, Role.MANUFACTURER, True),
    (Role.DISTRIBUTOR, Role.RETAILER, False),
    (Role.RETAILER, Role.DISTRIBUTOR, True),
    (Role.RETAILER, Role.BUYER, False),
    (Role.BUYER, Role.RETAILER, True),
    (Role.BUYER, Role.BUYER, False),
])
def test_can_buy_from(buyer, seller, allowed):
    assert roles.can_buy_from(buyer, seller) is allowed


def test_inventory_flags():
    assert roles.capabilities_for(Role.MANUFACTURER).has_raw_materials is True
    assert roles.capabilities_for(Role.DISTRIBUTOR).has_raw_materials is False
    assert roles.capabilities_for(Role.BUYER).has_inventory is False
    assert all(roles.capabilities_for(r).has_inventory for r in (Role.MANUFACTURER, Role.DISTRIBUTOR, Role.RETAILER))


def test_bucket_routing():
    assert roles.target_bucket_for(Role.MANUFACTURER) == StockBalance.Bucket.RAW_MATERIAL
    for role in (Role.DISTRIBUTOR, Role.RETAILER, Role.BUYER):
        assert roles.target_bucket_for(role) == StockBalance.Bucket.INVENTORY


def test_unknown_role_is_a_configuration_error():
    with pytest.raises(ImproperlyConfigured):
        roles.capabilities_for("WHOLESALER")


def test_incomplete_matrix_fails_validation(monkeypatch):
    trimmed = {k: v for k, v in roles.CAPABILITIES.items() if k != Role.BUYER}
    monkeypatch.setattr(roles, "CAPABILITIES", trimmed)
    with pytest.raises(ImproperlyConfigured):
        roles._validate_matrix()
