from typing import Dict, Any, List, Optional
from decimal import Decimal
import logging

from django.db import transaction
from django.db.models import Q, Sum, Count
from django.utils import timezone

from main.models import User
from main.services import UserService
from stock.models import TradeTransaction, TransactionItem, Order
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, InvalidStateError, deny,
    isoformat,
)
from stock.services.invoice_service import InvoiceService
from stock.services.ledger_service import StockLedgerService
from stock.services.line_items import (
    parse_cart, ensure_available, price_cart, sum_lines, serialize_line,
)
from stock.services.retry import run_with_retry
from stock.services.roles import WALK_IN_ROLE, can_sell_to, capabilities_for, target_bucket_for


logger = logging.getLogger(__name__)

WALK_IN_CUSTOMER = "Walk-in Customer"


class TransactionService(BaseService):
    """Append-only trade records plus the sale flows that produce them."""

    model = TradeTransaction

    @classmethod
    def serialize(cls, txn: TradeTransaction, include_items: bool = True) -> Dict[str, Any]:
        data = {
            "id": txn.id,
            "uuid": str(txn.uuid),
            "type": txn.type,
            "status": txn.status,
            "seller": {
                "id": txn.seller_id,
                "name": txn.seller_name,
                "role": txn.seller_role,
            },
            "buyer": {
                "id": txn.buyer_id,
                "name": txn.buyer_name,
                "role": txn.buyer_role,
            },
            "subtotal": str(txn.subtotal),
            "total_vat": str(txn.total_vat),
            "total_amount": str(txn.total_amount),
            "timestamp": isoformat(txn.timestamp),
            "order_id": txn.order_id,
            "is_walk_in": txn.is_walk_in,
            "customer_phone": txn.customer_phone,
            "cancelled_at": isoformat(txn.cancelled_at),
            "cancelled_by_id": txn.cancelled_by_id,
        }

        if include_items:
            data["items"] = [serialize_line(item) for item in txn.items.all()]

        return data

    @classmethod
    def record(cls,
               seller_id: int,
               buyer_id: Optional[int],
               items: List[Dict[str, Any]],
               type: str = TradeTransaction.Type.SALE,
               order: Optional[Order] = None,
               buyer_name: str = None,
               customer_phone: str = "",
               is_walk_in: bool = False) -> TradeTransaction:
        """Append a transaction from priced line dicts. Totals are recomputed from the lines."""
        if not items:
            raise ValidationError("A transaction needs at least one item", "items")

        seller = cls._get_user(seller_id)
        if is_walk_in:
            buyer = None
            buyer_role = WALK_IN_ROLE
        else:
            buyer = cls._get_user(buyer_id)
            buyer_role = buyer.role
            buyer_name = buyer_name or buyer.name

        totals = sum_lines(items)
        with transaction.atomic():
            txn = TradeTransaction.objects.create(
                seller=seller,
                seller_name=seller.name,
                seller_role=seller.role,
                buyer=buyer,
                buyer_name=buyer_name or WALK_IN_CUSTOMER,
                buyer_role=buyer_role,
                type=type,
                order=order,
                is_walk_in=is_walk_in,
                customer_phone=customer_phone,
                **totals,
            )
            TransactionItem.objects.bulk_create([
                TransactionItem(transaction=txn, **line) for line in items
            ])

        logger.info(
            f"Transaction {txn.id} recorded: {txn.type} {seller.id} -> {buyer_id or buyer_name}, total {txn.total_amount}"
        )
        return txn

    @classmethod
    def direct_sale(cls,
                    seller_id: int,
                    buyer_id: int,
                    items: Any,
                    buyer_unit_price: Any = None) -> Dict[str, Any]:
        """Sell straight to another account without an order."""
        seller = cls._get_user(seller_id)
        buyer = cls._get_user(buyer_id)
        if seller.id == buyer.id:
            raise ValidationError("Cannot sell to yourself", "buyer_id")
        if not can_sell_to(seller.role, buyer.role):
            raise ValidationError(
                f"A {seller.role} cannot sell to a {buyer.role}",
                "buyer_id",
                code="ROLE_NOT_ALLOWED",
            )

        cart = parse_cart(items)
        ensure_available(seller.id, cart)

        return run_with_retry(cls._direct_sale, seller, buyer, cart, buyer_unit_price)

    @classmethod
    def _direct_sale(cls, seller: User, buyer: User, cart, buyer_unit_price):
        lines = price_cart(seller.id, cart)
        for line in lines:
            StockLedgerService.transfer_stock(
                seller.id, buyer.id, line["product_id"], line["quantity"],
                buyer_unit_price if buyer_unit_price is not None else line["unit_price"],
            )

        txn = cls.record(seller.id, buyer.id, lines)
        invoice, degraded = InvoiceService.generate_or_degrade(txn)

        return success_response({
            "transaction": cls.serialize(txn),
            "invoice": InvoiceService.serialize(invoice) if invoice else None,
            "degraded": degraded,
        }, "Sale completed")

    @classmethod
    def walk_in_sale(cls,
                     seller_id: int,
                     items: Any,
                     customer_name: str = "",
                     customer_phone: str = "") -> Dict[str, Any]:
        """Counter sale to a customer with no account; stock leaves the ledger."""
        seller = cls._get_user(seller_id)
        if not capabilities_for(seller.role).has_inventory:
            raise ValidationError(
                f"A {seller.role} holds no inventory to sell",
                "seller_id",
                code="ROLE_NOT_ALLOWED",
            )

        cart = parse_cart(items)
        ensure_available(seller.id, cart)

        return run_with_retry(
            cls._walk_in_sale,
            seller,
            cart,
            (customer_name or "").strip() or WALK_IN_CUSTOMER,
            (customer_phone or "").strip() or "N/A",
        )

    @classmethod
    def _walk_in_sale(cls, seller: User, cart, customer_name: str, customer_phone: str):
        lines = price_cart(seller.id, cart)
        for line in lines:
            StockLedgerService.adjust_balance(seller.id, line["product_id"], -line["quantity"])

        txn = cls.record(
            seller.id,
            None,
            lines,
            buyer_name=customer_name,
            customer_phone=customer_phone,
            is_walk_in=True,
        )
        invoice, degraded = InvoiceService.generate_or_degrade(txn)

        return success_response({
            "transaction": cls.serialize(txn),
            "invoice": InvoiceService.serialize(invoice) if invoice else None,
            "degraded": degraded,
        }, "Walk-in sale completed")

    @classmethod
    def cancel(cls, transaction_id: int, acting_seller_id: int) -> Dict[str, Any]:
        """Reverse a completed sale: stock goes back to the seller, the invoice is voided."""
        return run_with_retry(cls._cancel, transaction_id, acting_seller_id)

    @classmethod
    def _cancel(cls, transaction_id, acting_seller_id):
        txn = cls.get_for_update(transaction_id)

        if str(txn.seller_id) != str(acting_seller_id):
            raise deny(acting_seller_id, "cancel", "transaction", transaction_id)

        if txn.status == TradeTransaction.Status.CANCELLED:
            raise InvalidStateError("transaction", txn.status, "cancel")

        for item in txn.items.all():
            if txn.is_walk_in:
                # Re-credit the seller; a surviving balance keeps its own price
                existing = StockLedgerService.get_balance(txn.seller_id, item.product_id)
                StockLedgerService.adjust_balance(
                    txn.seller_id,
                    item.product_id,
                    item.quantity,
                    new_unit_price=None if existing else item.unit_price,
                )
            else:
                StockLedgerService.return_stock(
                    txn.buyer_id,
                    txn.seller_id,
                    item.product_id,
                    item.quantity,
                    from_bucket=target_bucket_for(txn.buyer_role),
                    unit_price=item.unit_price,
                )

        txn.status = TradeTransaction.Status.CANCELLED
        txn.cancelled_at = timezone.now()
        txn.cancelled_by_id = txn.seller_id
        txn.save(update_fields=["status", "cancelled_at", "cancelled_by"])

        InvoiceService.cancel_for_transaction(txn)

        if txn.order_id:
            # The order keeps its CONFIRMED status; the reversal is stamped on it
            Order.objects.filter(id=txn.order_id).update(
                reversed_at=txn.cancelled_at, updated_at=txn.cancelled_at
            )
            logger.info(f"Order {txn.order_id} marked reversed by cancellation of transaction {txn.id}")

        logger.info(f"Transaction {txn.id} cancelled by user {acting_seller_id}")
        return success_response({"transaction": cls.serialize(txn)}, "Transaction cancelled")

    @classmethod
    def get(cls, transaction_id: int, acting_user_id: int) -> Dict[str, Any]:
        txn = cls.get_or_404(transaction_id)
        if acting_user_id is None or str(acting_user_id) not in (str(txn.seller_id), str(txn.buyer_id)):
            raise deny(acting_user_id, "view", "transaction", transaction_id)
        return success_response({"transaction": cls.serialize(txn)})

    @classmethod
    def list_for_user(cls,
                      user_id: int,
                      side: str = "all",
                      status: str = None,
                      page: int = 1,
                      per_page: int = 20) -> Dict[str, Any]:
        if side == "seller":
            queryset = cls.model.objects.filter(seller_id=user_id)
        elif side == "buyer":
            queryset = cls.model.objects.filter(buyer_id=user_id)
        elif side == "all":
            queryset = cls.model.objects.filter(Q(seller_id=user_id) | Q(buyer_id=user_id))
        else:
            raise ValidationError("side must be one of: all, seller, buyer", "side")

        if status:
            queryset = queryset.filter(status=status)

        transactions, pagination = paginate_queryset(queryset.order_by("-timestamp", "-id"), page, per_page)

        return success_response({
            "transactions": [cls.serialize(t, include_items=False) for t in transactions],
            "pagination": pagination,
        })

    @classmethod
    def get_stats(cls, user_id: int) -> Dict[str, Any]:
        completed = cls.model.objects.filter(status=TradeTransaction.Status.COMPLETED)

        sales = completed.filter(seller_id=user_id).aggregate(
            count=Count("id"), total=Sum("total_amount")
        )
        purchases = completed.filter(buyer_id=user_id).aggregate(
            count=Count("id"), total=Sum("total_amount")
        )

        revenue = sales["total"] or Decimal("0")
        expense = purchases["total"] or Decimal("0")

        return success_response({
            "stats": {
                "sales_count": sales["count"],
                "purchases_count": purchases["count"],
                "total_transactions": sales["count"] + purchases["count"],
                "sales_revenue": str(revenue),
                "purchases_expense": str(expense),
                "net": str(revenue - expense),
            }
        })

    @staticmethod
    def _get_user(user_id) -> User:
        user = UserService.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user
