"""
Role capability matrix: who may sell to whom, who holds stock, and where a
purchase lands in the buyer's ledger.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet

from django.core.exceptions import ImproperlyConfigured

from main.models import User
from stock.models import StockBalance


Role = User.RoleChoices
Bucket = StockBalance.Bucket

# Buyer role recorded on walk-in transactions; never a User role
WALK_IN_ROLE = "WALK_IN"


@dataclass(frozen=True)
class RoleCapabilities:
    can_sell_to: FrozenSet[str]
    can_buy_from: FrozenSet[str]
    has_inventory: bool
    has_raw_materials: bool


CAPABILITIES: Dict[str, RoleCapabilities] = {
    Role.MANUFACTURER: RoleCapabilities(
        can_sell_to=frozenset({Role.DISTRIBUTOR, Role.RETAILER, Role.BUYER}),
        can_buy_from=frozenset({Role.MANUFACTURER, Role.DISTRIBUTOR}),
        has_inventory=True,
        has_raw_materials=True,
    ),
    Role.DISTRIBUTOR: RoleCapabilities(
        can_sell_to=frozenset({Role.RETAILER, Role.BUYER}),
        can_buy_from=frozenset({Role.MANUFACTURER}),
        has_inventory=True,
        has_raw_materials=False,
    ),
    Role.RETAILER: RoleCapabilities(
        can_sell_to=frozenset({Role.BUYER}),
        can_buy_from=frozenset({Role.MANUFACTURER, Role.DISTRIBUTOR}),
        has_inventory=True,
        has_raw_materials=False,
    ),
    Role.BUYER: RoleCapabilities(
        can_sell_to=frozenset(),
        can_buy_from=frozenset({Role.MANUFACTURER, Role.DISTRIBUTOR, Role.RETAILER}),
        has_inventory=False,
        has_raw_materials=False,
    ),
}


def _validate_matrix():
    missing = set(Role.values) - set(CAPABILITIES)
    unknown = set(CAPABILITIES) - set(Role.values)
    if missing or unknown:
        raise ImproperlyConfigured(
            f"Role capability matrix out of sync: missing={sorted(missing)} unknown={sorted(unknown)}"
        )
    for role, caps in CAPABILITIES.items():
        stray = (caps.can_sell_to | caps.can_buy_from) - set(Role.values)
        if stray:
            raise ImproperlyConfigured(f"Role {role} references unknown roles {sorted(stray)}")


_validate_matrix()


def capabilities_for(role: str) -> RoleCapabilities:
    try:
        return CAPABILITIES[role]
    except KeyError:
        raise ImproperlyConfigured(f"No capabilities defined for role {role!r}")


def can_sell_to(seller_role: str, buyer_role: str) -> bool:
    return buyer_role in capabilities_for(seller_role).can_sell_to


def can_buy_from(buyer_role: str, seller_role: str) -> bool:
    return seller_role in capabilities_for(buyer_role).can_buy_from


def target_bucket_for(buyer_role: str) -> str:
    """A manufacturer's purchases are production inputs, everyone else restocks inventory."""
    if buyer_role == Role.MANUFACTURER:
        return Bucket.RAW_MATERIAL
    return Bucket.INVENTORY
