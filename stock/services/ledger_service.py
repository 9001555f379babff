from typing import Dict, Any, Optional
from decimal import Decimal
import logging

from django.db.models import F
from django.utils import timezone

from main.models import Product
from main.services import ProductService, UserService
from stock.models import StockBalance
from stock.services.availability_service import AvailabilityService
from stock.services.base_service import (
    BaseService, success_response,
    ValidationError, InvalidQuantityError, PriceRequiredError, NotFoundError,
    InsufficientStockError, SellerHasNoStockError, ConcurrentUpdateConflictError,
    to_decimal, round_decimal, round_money, min_quantity, min_price, isoformat,
    quantity_in_range, amount_in_range, MAX_QUANTITY, MAX_AMOUNT,
)
from stock.services.retry import run_with_retry
from stock.services.roles import target_bucket_for


logger = logging.getLogger(__name__)

Bucket = StockBalance.Bucket


class StockLedgerService(BaseService):
    """
    Per-owner stock balances keyed by (owner, product, bucket).

    Every write goes through a version-conditional UPDATE or DELETE so a
    concurrent writer that read the same row loses and is retried. A balance
    that reaches zero is removed rather than stored.
    """

    model = StockBalance

    @classmethod
    def serialize(cls, balance: StockBalance) -> Dict[str, Any]:
        return {
            "id": balance.id,
            "uuid": str(balance.uuid),
            "owner_id": balance.owner_id,
            "product_id": balance.product_id,
            "product_name": balance.product_name,
            "product_sku": balance.product_sku,
            "product_unit": balance.product_unit,
            "bucket": balance.bucket,
            "quantity": str(balance.quantity),
            "unit_price": str(balance.unit_price),
            "total_value": str(round_money(balance.total_value)),
            "version": balance.version,
            "created_at": isoformat(balance.created_at),
            "updated_at": isoformat(balance.updated_at),
        }

    # ==================== Reads ====================

    @classmethod
    def get_balance(cls,
                    owner_id: int,
                    product_id: int,
                    bucket: str = Bucket.INVENTORY) -> Optional[StockBalance]:
        try:
            return cls.model.objects.filter(
                owner_id=owner_id, product_id=product_id, bucket=bucket
            ).first()
        except (ValueError, TypeError):
            return None

    @classmethod
    def get_owner_balances(cls, owner_id: int, bucket: str = None) -> Dict[str, Any]:
        if bucket:
            cls._validate_bucket(bucket)

        queryset = cls.model.objects.filter(owner_id=owner_id)
        if bucket:
            queryset = queryset.filter(bucket=bucket)
        balances = list(queryset.order_by("product_name", "bucket"))

        return success_response({
            "balances": [cls.serialize(b) for b in balances],
            "count": len(balances),
        })

    @classmethod
    def check_availability(cls, owner_id: int, product_id: int, requested_qty: Any) -> Dict[str, Any]:
        return AvailabilityService.check(owner_id, product_id, requested_qty)

    # ==================== Writes ====================

    @classmethod
    def adjust_balance(cls,
                       owner_id: int,
                       product_id: int,
                       delta_quantity: Any,
                       new_unit_price: Any = None,
                       bucket: str = Bucket.INVENTORY) -> Dict[str, Any]:
        """
        Apply a signed quantity change, optionally repricing the balance.

        Creates the row on a first positive adjustment (a price is required
        then), deletes it when the quantity lands on exactly zero, and refuses
        anything that would go negative.
        """
        return run_with_retry(
            cls._adjust_balance, owner_id, product_id, delta_quantity, new_unit_price, bucket
        )

    @classmethod
    def _adjust_balance(cls, owner_id, product_id, delta_quantity, new_unit_price, bucket):
        cls._validate_bucket(bucket)

        delta = to_decimal(delta_quantity, default=None)
        if delta is None:
            raise InvalidQuantityError("Quantity change must be a number")
        if not quantity_in_range(delta):
            raise InvalidQuantityError(f"Quantity change must be below {MAX_QUANTITY:,.0f}")
        delta = round_decimal(delta)

        price = cls._clean_price(new_unit_price)

        if UserService.get_user(owner_id) is None:
            raise NotFoundError("User", owner_id)
        product = cls._get_product(product_id)

        balance = cls._lock_balance(owner_id, product_id, bucket)

        if balance is None:
            if delta <= 0:
                raise InvalidQuantityError(
                    f"No {bucket} balance of {product.name} exists; the first adjustment must be positive"
                )
            if price is None:
                raise PriceRequiredError()
            balance = cls._create_balance(owner_id, product, bucket, delta, price)
            logger.info(
                f"Stock created: owner {owner_id}, {product.sku} [{bucket}] qty {delta} @ {price}"
            )
            return success_response({
                "outcome": "created",
                "balance": cls.serialize(balance),
                "final_quantity": str(balance.quantity),
            }, "Stock balance created")

        if delta == 0 and price is None:
            raise InvalidQuantityError("Quantity change must be non-zero unless a new price is given")

        new_quantity = balance.quantity + delta
        if new_quantity < 0:
            raise InsufficientStockError(product.name, -delta, balance.quantity)
        if not quantity_in_range(new_quantity):
            raise InvalidQuantityError(f"A balance cannot reach {MAX_QUANTITY:,.0f} or more")

        if new_quantity == 0:
            cls._delete_versioned(balance)
            logger.info(f"Stock depleted: owner {owner_id}, {product.sku} [{bucket}] removed")
            return success_response({
                "outcome": "deleted",
                "balance": None,
                "final_quantity": str(Decimal("0")),
            }, "Stock balance depleted and removed")

        cls._write_versioned(
            balance,
            product,
            quantity=new_quantity,
            unit_price=price if price is not None else balance.unit_price,
        )
        logger.info(
            f"Stock adjusted: owner {owner_id}, {product.sku} [{bucket}] {delta:+} -> {balance.quantity}"
        )
        return success_response({
            "outcome": "updated",
            "balance": cls.serialize(balance),
            "final_quantity": str(balance.quantity),
        }, "Stock balance updated")

    @classmethod
    def transfer_stock(cls,
                       seller_id: int,
                       buyer_id: int,
                       product_id: int,
                       quantity: Any,
                       buyer_unit_price: Any = None) -> Dict[str, Any]:
        """
        Move quantity from the seller's inventory to the buyer's routed bucket.

        Both sides commit together or not at all. A buyer row created here is
        seeded with buyer_unit_price (the seller's price when omitted); an
        existing buyer row keeps its own price.
        """
        return run_with_retry(
            cls._transfer_stock, seller_id, buyer_id, product_id, quantity, buyer_unit_price
        )

    @classmethod
    def _transfer_stock(cls, seller_id, buyer_id, product_id, quantity, buyer_unit_price):
        qty = cls._clean_quantity(quantity)
        price = cls._clean_price(buyer_unit_price)

        if str(seller_id) == str(buyer_id):
            raise ValidationError("Seller and buyer must be different accounts", "buyer_id")

        product = cls._get_product(product_id)
        buyer_role = UserService.get_user_role(buyer_id)
        if buyer_role is None:
            raise NotFoundError("User", buyer_id)

        seller_balance = cls._lock_balance(seller_id, product_id, Bucket.INVENTORY)
        if seller_balance is None:
            raise SellerHasNoStockError(product.name, seller_id)
        if qty > seller_balance.quantity:
            raise InsufficientStockError(product.name, qty, seller_balance.quantity)

        seller_price = seller_balance.unit_price
        seller_after = seller_balance.quantity - qty
        if seller_after == 0:
            cls._delete_versioned(seller_balance)
        else:
            cls._write_versioned(seller_balance, product, quantity=seller_after)

        bucket = target_bucket_for(buyer_role)
        buyer_balance, created = cls._credit(
            buyer_id, product, bucket, qty, price if price is not None else seller_price
        )

        logger.info(
            f"Stock transferred: {qty} x {product.sku} from {seller_id} to {buyer_id} [{bucket}]"
        )
        return {
            "seller_quantity_after": str(seller_after),
            "buyer_quantity_after": str(buyer_balance.quantity),
            "buyer_bucket": bucket,
            "buyer_created": created,
        }

    @classmethod
    def return_stock(cls,
                     from_owner_id: int,
                     to_owner_id: int,
                     product_id: int,
                     quantity: Any,
                     from_bucket: str = Bucket.INVENTORY,
                     unit_price: Any = None) -> Dict[str, Any]:
        """Reverse a transfer: draw from the holder's bucket back into the seller's inventory."""
        return run_with_retry(
            cls._return_stock, from_owner_id, to_owner_id, product_id, quantity, from_bucket, unit_price
        )

    @classmethod
    def _return_stock(cls, from_owner_id, to_owner_id, product_id, quantity, from_bucket, unit_price):
        cls._validate_bucket(from_bucket)
        qty = cls._clean_quantity(quantity)
        price = cls._clean_price(unit_price)
        product = cls._get_product(product_id)

        holder_balance = cls._lock_balance(from_owner_id, product_id, from_bucket)
        available = holder_balance.quantity if holder_balance else Decimal("0")
        if qty > available:
            raise InsufficientStockError(product.name, qty, available)

        holder_price = holder_balance.unit_price
        holder_after = available - qty
        if holder_after == 0:
            cls._delete_versioned(holder_balance)
        else:
            cls._write_versioned(holder_balance, product, quantity=holder_after)

        owner_balance, created = cls._credit(
            to_owner_id, product, Bucket.INVENTORY, qty, price if price is not None else holder_price
        )

        logger.info(
            f"Stock returned: {qty} x {product.sku} from {from_owner_id} [{from_bucket}] to {to_owner_id}"
        )
        return {
            "holder_quantity_after": str(holder_after),
            "owner_quantity_after": str(owner_balance.quantity),
            "owner_created": created,
        }

    # ==================== Internals ====================

    @classmethod
    def _credit(cls, owner_id, product: Product, bucket: str, qty: Decimal, seed_price: Decimal):
        balance = cls._lock_balance(owner_id, product.id, bucket)
        if balance is None:
            return cls._create_balance(owner_id, product, bucket, qty, seed_price), True
        if not quantity_in_range(balance.quantity + qty):
            raise InvalidQuantityError(f"A balance cannot reach {MAX_QUANTITY:,.0f} or more")
        cls._write_versioned(balance, product, quantity=balance.quantity + qty)
        return balance, False

    @classmethod
    def _lock_balance(cls, owner_id, product_id, bucket) -> Optional[StockBalance]:
        return cls.model.objects.select_for_update().filter(
            owner_id=owner_id, product_id=product_id, bucket=bucket
        ).first()

    @classmethod
    def _create_balance(cls, owner_id, product: Product, bucket: str,
                        quantity: Decimal, unit_price: Decimal) -> StockBalance:
        # A concurrent creator trips the unique constraint; the retry wrapper
        # turns that IntegrityError into a conflict
        return cls.model.objects.create(
            owner_id=owner_id,
            product=product,
            bucket=bucket,
            quantity=quantity,
            unit_price=unit_price,
            product_name=product.name,
            product_sku=product.sku,
            product_unit=product.unit,
        )

    @classmethod
    def _write_versioned(cls, balance: StockBalance, product: Product, **fields) -> None:
        fields.update(
            product_name=product.name,
            product_sku=product.sku,
            product_unit=product.unit,
            updated_at=timezone.now(),
        )
        updated = cls.model.objects.filter(
            id=balance.id, version=balance.version
        ).update(version=F("version") + 1, **fields)
        if updated != 1:
            raise ConcurrentUpdateConflictError()

        for name, value in fields.items():
            setattr(balance, name, value)
        balance.version += 1

    @classmethod
    def _delete_versioned(cls, balance: StockBalance) -> None:
        deleted, _ = cls.model.objects.filter(id=balance.id, version=balance.version).delete()
        if deleted != 1:
            raise ConcurrentUpdateConflictError()

    @classmethod
    def _get_product(cls, product_id) -> Product:
        product = ProductService.get_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    @classmethod
    def _clean_quantity(cls, quantity: Any) -> Decimal:
        qty = to_decimal(quantity, default=None)
        if qty is None or qty < min_quantity():
            raise InvalidQuantityError(f"Quantity must be at least {min_quantity()}")
        if not quantity_in_range(qty):
            raise InvalidQuantityError(f"Quantity must be below {MAX_QUANTITY:,.0f}")
        return round_decimal(qty)

    @classmethod
    def _clean_price(cls, price: Any) -> Optional[Decimal]:
        if price is None:
            return None
        value = to_decimal(price, default=None)
        if value is None or value < min_price():
            raise ValidationError(f"Unit price must be at least {min_price()}", "unit_price")
        if not amount_in_range(value):
            raise ValidationError(f"Unit price must be below {MAX_AMOUNT:,.0f}", "unit_price")
        return round_money(value)

    @classmethod
    def _validate_bucket(cls, bucket: str) -> None:
        if bucket not in Bucket.values:
            raise ValidationError(
                f"Unknown bucket {bucket}; expected one of {', '.join(Bucket.values)}", "bucket"
            )
