from typing import Dict, Any, Optional
import logging

from django.db import transaction
from django.utils import timezone

from main.services import UserService
from stock.models import Order, OrderItem
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ServiceError, ValidationError, NotFoundError, InvalidStateError, deny,
    generate_number, isoformat,
)
from stock.services.invoice_service import InvoiceService
from stock.services.ledger_service import StockLedgerService
from stock.services.line_items import (
    parse_cart, ensure_available, price_cart, sum_lines, copy_lines, serialize_line,
)
from stock.services.retry import run_with_retry
from stock.services.roles import can_buy_from
from stock.services.transaction_service import TransactionService


logger = logging.getLogger(__name__)


class OrderService(BaseService):
    """
    Buyer-initiated orders and the seller's decision on them.

    PENDING is the only non-terminal state: the seller confirms or rejects,
    the buyer may cancel. Only confirmation touches the ledger, and it moves
    every line or none.
    """

    model = Order

    @classmethod
    def serialize(cls, order: Order, include_items: bool = True) -> Dict[str, Any]:
        data = {
            "id": order.id,
            "uuid": str(order.uuid),
            "order_number": order.order_number,
            "status": order.status,
            "seller": {
                "id": order.seller_id,
                "name": order.seller_name,
                "role": order.seller_role,
            },
            "buyer": {
                "id": order.buyer_id,
                "name": order.buyer_name,
                "role": order.buyer_role,
            },
            "subtotal": str(order.subtotal),
            "total_vat": str(order.total_vat),
            "total_amount": str(order.total_amount),
            "transaction_id": order.transaction_id,
            "invoice_id": order.invoice_id,
            "rejection_reason": order.rejection_reason,
            "buyer_notes": order.buyer_notes,
            "seller_notes": order.seller_notes,
            "created_at": isoformat(order.created_at),
            "updated_at": isoformat(order.updated_at),
            "confirmed_at": isoformat(order.confirmed_at),
            "rejected_at": isoformat(order.rejected_at),
            "cancelled_at": isoformat(order.cancelled_at),
            "reversed_at": isoformat(order.reversed_at),
        }

        if include_items:
            data["items"] = [serialize_line(item) for item in order.items.all()]

        return data

    @classmethod
    def create(cls,
               buyer_id: int,
               seller_id: int,
               items: Any,
               buyer_notes: str = "") -> Dict[str, Any]:
        buyer = UserService.get_user(buyer_id)
        if buyer is None:
            raise NotFoundError("User", buyer_id)
        seller = UserService.get_user(seller_id)
        if seller is None:
            raise NotFoundError("User", seller_id)

        if buyer.id == seller.id:
            raise ValidationError("Cannot place an order with yourself", "seller_id")

        if not can_buy_from(buyer.role, seller.role):
            raise ValidationError(
                f"A {buyer.role} cannot buy from a {seller.role}",
                "seller_id",
                code="ROLE_NOT_ALLOWED",
            )

        cart = parse_cart(items)
        ensure_available(seller.id, cart)
        lines = price_cart(seller.id, cart)
        totals = sum_lines(lines)

        with transaction.atomic():
            order = Order.objects.create(
                order_number=generate_number("ORD"),
                seller=seller,
                seller_name=seller.name,
                seller_role=seller.role,
                buyer=buyer,
                buyer_name=buyer.name,
                buyer_role=buyer.role,
                buyer_notes=buyer_notes or "",
                **totals,
            )
            OrderItem.objects.bulk_create([OrderItem(order=order, **line) for line in lines])

        logger.info(
            f"Order {order.order_number} created: buyer {buyer.id} -> seller {seller.id}, "
            f"{len(lines)} item(s), total {order.total_amount}"
        )
        return success_response({"order": cls.serialize(order)}, "Order created")

    @classmethod
    def confirm(cls,
                order_id: int,
                acting_seller_id: int,
                resale_price_override: Any = None,
                seller_notes: str = "") -> Dict[str, Any]:
        """
        Move every line's stock to the buyer, record the sale and invoice it.

        The transfers, the transaction and the status flip commit together;
        the first line that cannot be filled aborts the whole confirmation.
        The invoice is written in a savepoint afterwards and its failure only
        degrades the result.
        """
        return run_with_retry(cls._confirm, order_id, acting_seller_id, resale_price_override, seller_notes)

    @classmethod
    def _confirm(cls, order_id, acting_seller_id, resale_price_override, seller_notes):
        order = cls._lock_pending(order_id, acting_seller_id, "confirm", seller=True)

        lines = copy_lines(order.items.all())
        for line in lines:
            buyer_price = resale_price_override if resale_price_override is not None else line["unit_price"]
            try:
                StockLedgerService.transfer_stock(
                    order.seller_id, order.buyer_id, line["product_id"], line["quantity"], buyer_price
                )
            except ServiceError as e:
                logger.warning(
                    f"Order {order.order_number} confirmation aborted on {line['product_name']}: {e.message}"
                )
                raise

        txn = TransactionService.record(order.seller_id, order.buyer_id, lines, order=order)

        order.status = Order.Status.CONFIRMED
        order.confirmed_at = timezone.now()
        order.transaction = txn
        update_fields = ["status", "confirmed_at", "transaction", "updated_at"]
        if seller_notes:
            order.seller_notes = seller_notes
            update_fields.append("seller_notes")
        order.save(update_fields=update_fields)

        invoice, degraded = InvoiceService.generate_or_degrade(txn, order=order)
        if invoice is not None:
            order.invoice = invoice
            order.save(update_fields=["invoice", "updated_at"])

        logger.info(
            f"Order {order.order_number} confirmed by seller {acting_seller_id}"
            + (" without invoice" if degraded else "")
        )
        return success_response({
            "order": cls.serialize(order),
            "transaction": TransactionService.serialize(txn),
            "invoice": InvoiceService.serialize(invoice) if invoice else None,
            "degraded": degraded,
        }, "Order confirmed")

    @classmethod
    @transaction.atomic
    def reject(cls, order_id: int, acting_seller_id: int, reason: str = "") -> Dict[str, Any]:
        order = cls._lock_pending(order_id, acting_seller_id, "reject", seller=True)

        order.status = Order.Status.REJECTED
        order.rejected_at = timezone.now()
        order.rejection_reason = reason or ""
        order.save(update_fields=["status", "rejected_at", "rejection_reason", "updated_at"])

        logger.info(f"Order {order.order_number} rejected by seller {acting_seller_id}: {reason}")
        return success_response({"order": cls.serialize(order)}, "Order rejected")

    @classmethod
    @transaction.atomic
    def cancel(cls, order_id: int, acting_buyer_id: int) -> Dict[str, Any]:
        order = cls._lock_pending(order_id, acting_buyer_id, "cancel", seller=False)

        order.status = Order.Status.CANCELLED
        order.cancelled_at = timezone.now()
        order.save(update_fields=["status", "cancelled_at", "updated_at"])

        logger.info(f"Order {order.order_number} cancelled by buyer {acting_buyer_id}")
        return success_response({"order": cls.serialize(order)}, "Order cancelled")

    @classmethod
    def get(cls, order_id: int, acting_user_id: int) -> Dict[str, Any]:
        order = cls.get_or_404(order_id)
        if acting_user_id is None or str(acting_user_id) not in (str(order.seller_id), str(order.buyer_id)):
            raise deny(acting_user_id, "view", "order", order_id)
        return success_response({"order": cls.serialize(order)})

    @classmethod
    def list_for_seller(cls, seller_id: int, status: str = None,
                        page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        return cls._list(Order.objects.filter(seller_id=seller_id), status, page, per_page)

    @classmethod
    def list_for_buyer(cls, buyer_id: int, status: str = None,
                       page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        return cls._list(Order.objects.filter(buyer_id=buyer_id), status, page, per_page)

    @classmethod
    def _list(cls, queryset, status: Optional[str], page: int, per_page: int) -> Dict[str, Any]:
        if status:
            if status not in Order.Status.values:
                raise ValidationError(
                    f"Status must be one of: {', '.join(Order.Status.values)}", "status"
                )
            queryset = queryset.filter(status=status)

        orders, pagination = paginate_queryset(queryset.order_by("-created_at", "-id"), page, per_page)

        return success_response({
            "orders": [cls.serialize(o, include_items=False) for o in orders],
            "pagination": pagination,
        })

    @classmethod
    def _lock_pending(cls, order_id, actor_id, action: str, seller: bool) -> Order:
        """Row-lock the order, then check the actor and that it is still PENDING."""
        order = cls.get_for_update(order_id)

        owner_id = order.seller_id if seller else order.buyer_id
        if actor_id is None or str(owner_id) != str(actor_id):
            raise deny(actor_id, action, "order", order_id)

        if order.status != Order.Status.PENDING:
            raise InvalidStateError("order", order.status, action)

        return order
