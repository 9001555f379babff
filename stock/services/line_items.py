"""
Line pricing shared by orders, transactions and invoices.

Money is rounded half-up to cents per line; document totals are the sums of
the rounded line values.
"""
from typing import Dict, Any, List, Iterable
from decimal import Decimal

from main.models import Product
from main.services import ProductService
from stock.services.availability_service import AvailabilityService
from stock.services.ledger_service import StockLedgerService
from stock.services.base_service import (
    ValidationError, InvalidQuantityError, NotFoundError,
    InsufficientStockError, SellerHasNoStockError,
    to_decimal, round_decimal, round_money, min_quantity, min_price,
    quantity_in_range, amount_in_range, MAX_QUANTITY, MAX_AMOUNT,
)


LINE_FIELDS = (
    "product_id", "product_name", "product_sku", "product_unit",
    "quantity", "unit_price", "vat_rate",
    "line_subtotal", "line_vat", "line_total",
)


def parse_cart(items: Any) -> List[Dict[str, Any]]:
    """
    Validate raw cart lines of {product_id, quantity, unit_price?}.

    Returns [{product, quantity, unit_price}] with catalog products resolved;
    unit_price stays None when the caller left it to the seller's price.
    """
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("At least one item is required", "items")

    cart = []
    seen = set()
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index + 1} must be an object", "items")

        product_id = raw.get("product_id")
        if product_id is None:
            raise ValidationError(f"Item {index + 1} is missing product_id", "product_id")
        product = ProductService.get_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if product.id in seen:
            raise ValidationError(f"{product.name} appears more than once", "items")
        seen.add(product.id)

        quantity = to_decimal(raw.get("quantity"), default=None)
        if quantity is None or quantity < min_quantity():
            raise InvalidQuantityError(
                f"Quantity for {product.name} must be at least {min_quantity()}"
            )
        if not quantity_in_range(quantity):
            raise InvalidQuantityError(f"Quantity for {product.name} must be below {MAX_QUANTITY:,.0f}")

        unit_price = None
        if raw.get("unit_price") is not None:
            unit_price = to_decimal(raw.get("unit_price"), default=None)
            if unit_price is None or unit_price < min_price():
                raise ValidationError(
                    f"Unit price for {product.name} must be at least {min_price()}", "unit_price"
                )
            if not amount_in_range(unit_price):
                raise ValidationError(
                    f"Unit price for {product.name} must be below {MAX_AMOUNT:,.0f}", "unit_price"
                )

        cart.append({
            "product": product,
            "quantity": round_decimal(quantity),
            "unit_price": unit_price,
        })
    return cart


def ensure_available(seller_id: int, cart: List[Dict[str, Any]]) -> None:
    short = AvailabilityService.check_items(seller_id, [
        {"product_id": entry["product"].id, "quantity": entry["quantity"]} for entry in cart
    ])
    if short is None:
        return
    product = next(e["product"] for e in cart if e["product"].id == short["product_id"])
    raise InsufficientStockError(product.name, short["requested"], short["available"])


def price_cart(seller_id: int, cart: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Build priced lines; missing prices default to the seller's inventory price."""
    lines = []
    for entry in cart:
        product = entry["product"]
        unit_price = entry["unit_price"]
        if unit_price is None:
            balance = StockLedgerService.get_balance(seller_id, product.id)
            if balance is None:
                raise SellerHasNoStockError(product.name, seller_id)
            unit_price = balance.unit_price
        lines.append(build_line(product, entry["quantity"], unit_price))
    return lines


def build_line(product: Product, quantity: Decimal, unit_price: Decimal) -> Dict[str, Any]:
    quantity = round_decimal(quantity)
    unit_price = round_money(unit_price)
    vat_rate = product.vat_rate or Decimal("0")

    line_subtotal = round_money(quantity * unit_price)
    line_vat = round_money(line_subtotal * vat_rate / 100)
    if not amount_in_range(line_subtotal + line_vat):
        raise ValidationError(f"Line total for {product.name} must be below {MAX_AMOUNT:,.0f}", "items")

    return {
        "product_id": product.id,
        "product_name": product.name,
        "product_sku": product.sku,
        "product_unit": product.unit,
        "quantity": quantity,
        "unit_price": unit_price,
        "vat_rate": vat_rate,
        "line_subtotal": line_subtotal,
        "line_vat": line_vat,
        "line_total": line_subtotal + line_vat,
    }


def sum_lines(lines: Iterable[Dict[str, Any]]) -> Dict[str, Decimal]:
    subtotal = Decimal("0")
    total_vat = Decimal("0")
    for line in lines:
        subtotal += line["line_subtotal"]
        total_vat += line["line_vat"]
    if not amount_in_range(subtotal + total_vat):
        raise ValidationError(f"Total amount must be below {MAX_AMOUNT:,.0f}", "items")
    return {
        "subtotal": subtotal,
        "total_vat": total_vat,
        "total_amount": subtotal + total_vat,
    }


def copy_lines(items) -> List[Dict[str, Any]]:
    """Line dicts from persisted item rows (order, transaction or invoice items)."""
    return [{field: getattr(item, field) for field in LINE_FIELDS} for item in items]


def serialize_line(item) -> Dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "product_sku": item.product_sku,
        "product_unit": item.product_unit,
        "quantity": str(item.quantity),
        "unit_price": str(item.unit_price),
        "vat_rate": str(item.vat_rate),
        "line_subtotal": str(item.line_subtotal),
        "line_vat": str(item.line_vat),
        "line_total": str(item.line_total),
    }
