from typing import Dict, Any, Optional
from datetime import timedelta
import logging

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from stock.models import Invoice, InvoiceItem, Order, TradeTransaction
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, InvalidStateError, deny,
    generate_number, ledger_setting, isoformat,
)
from stock.services.line_items import copy_lines, serialize_line


logger = logging.getLogger(__name__)

# Forward-only progression; CANCELLED is reached only through transaction cancellation
STATUS_FLOW = [Invoice.Status.GENERATED, Invoice.Status.SENT, Invoice.Status.PAID]


class InvoiceService(BaseService):
    model = Invoice

    @classmethod
    def serialize(cls, invoice: Invoice, include_items: bool = True) -> Dict[str, Any]:
        data = {
            "id": invoice.id,
            "uuid": str(invoice.uuid),
            "invoice_number": invoice.invoice_number,
            "transaction_id": invoice.transaction_id,
            "order_id": invoice.order_id,
            "seller": {
                "id": invoice.seller_id,
                "name": invoice.seller_name,
                "role": invoice.seller_role,
            },
            "buyer": {
                "id": invoice.buyer_id,
                "name": invoice.buyer_name,
                "role": invoice.buyer_role,
            },
            "subtotal": str(invoice.subtotal),
            "total_vat": str(invoice.total_vat),
            "total_amount": str(invoice.total_amount),
            "status": invoice.status,
            "payment_status": invoice.payment_status,
            "generated_at": isoformat(invoice.generated_at),
            "due_date": isoformat(invoice.due_date),
            "paid_at": isoformat(invoice.paid_at),
            "notes": invoice.notes,
            "is_walk_in": invoice.is_walk_in,
            "customer_phone": invoice.customer_phone,
        }

        if include_items:
            data["items"] = [serialize_line(item) for item in invoice.items.all()]

        return data

    @classmethod
    def generate(cls,
                 txn: TradeTransaction,
                 due_days: int = None,
                 notes: str = "",
                 order: Optional[Order] = None) -> Invoice:
        """
        Derive the invoice for a recorded transaction.

        Walk-in sales are settled at the counter, so their invoice is born
        paid and due immediately. Trade invoices are due after
        TRADE_INVOICE_DUE_DAYS.
        """
        now = timezone.now()

        if txn.is_walk_in:
            due_date = now
            status = Invoice.Status.PAID
            payment_status = Invoice.PaymentStatus.PAID
            paid_at = now
            notes = notes or f"Walk-in customer sale. Phone: {txn.customer_phone or 'N/A'}"
        else:
            if due_days is None:
                due_days = int(ledger_setting("TRADE_INVOICE_DUE_DAYS"))
            due_date = now + timedelta(days=due_days)
            status = Invoice.Status.GENERATED
            payment_status = Invoice.PaymentStatus.PENDING
            paid_at = None

        invoice = Invoice.objects.create(
            invoice_number=generate_number("INV"),
            transaction=txn,
            order=order or txn.order,
            seller_id=txn.seller_id,
            seller_name=txn.seller_name,
            seller_role=txn.seller_role,
            buyer_id=txn.buyer_id,
            buyer_name=txn.buyer_name,
            buyer_role=txn.buyer_role,
            subtotal=txn.subtotal,
            total_vat=txn.total_vat,
            total_amount=txn.total_amount,
            status=status,
            payment_status=payment_status,
            generated_at=now,
            due_date=due_date,
            paid_at=paid_at,
            notes=notes,
            is_walk_in=txn.is_walk_in,
            customer_phone=txn.customer_phone,
        )

        InvoiceItem.objects.bulk_create([
            InvoiceItem(invoice=invoice, **line) for line in copy_lines(txn.items.all())
        ])

        logger.info(f"Invoice {invoice.invoice_number} generated for transaction {txn.id}")
        return invoice

    @classmethod
    def generate_from_order(cls, order: Order, txn: TradeTransaction) -> Invoice:
        notes = f"Order {order.order_number}"
        if order.buyer_notes:
            notes = f"{notes}. {order.buyer_notes}"
        return cls.generate(txn, notes=notes, order=order)

    @classmethod
    def generate_or_degrade(cls, txn: TradeTransaction, order: Optional[Order] = None):
        """
        Generate the invoice in a savepoint. The stock has already moved, so an
        invoice failure leaves the sale standing without one.

        Returns (invoice, degraded).
        """
        try:
            with transaction.atomic():
                if order is not None:
                    return cls.generate_from_order(order, txn), False
                return cls.generate(txn), False
        except Exception:
            logger.exception(f"Invoice generation failed for transaction {txn.id}")
            return None, True

    @classmethod
    def cancel_for_transaction(cls, txn: TradeTransaction) -> Optional[Invoice]:
        invoice = cls.model.objects.select_for_update().filter(transaction=txn).first()
        if invoice is None:
            return None
        invoice.status = Invoice.Status.CANCELLED
        invoice.save(update_fields=["status", "updated_at"])
        logger.info(f"Invoice {invoice.invoice_number} cancelled with transaction {txn.id}")
        return invoice

    @classmethod
    def get(cls, invoice_id: int, acting_user_id: int) -> Dict[str, Any]:
        invoice = cls.get_or_404(invoice_id)
        if not cls._is_party(invoice, acting_user_id):
            raise deny(acting_user_id, "view", "invoice", invoice_id)
        return success_response({"invoice": cls.serialize(invoice)})

    @classmethod
    def list_for_user(cls,
                      user_id: int,
                      side: str = "all",
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

        invoices, pagination = paginate_queryset(queryset.order_by("-generated_at", "-id"), page, per_page)

        return success_response({
            "invoices": [cls.serialize(inv, include_items=False) for inv in invoices],
            "pagination": pagination,
        })

    @classmethod
    @transaction.atomic
    def mark_paid(cls, invoice_id: int, acting_user_id: int) -> Dict[str, Any]:
        invoice = cls.get_for_update(invoice_id)

        if not cls._is_party(invoice, acting_user_id):
            raise deny(acting_user_id, "mark_paid", "invoice", invoice_id)

        if invoice.status == Invoice.Status.CANCELLED:
            raise InvalidStateError("invoice", invoice.status, "mark paid")

        if invoice.payment_status != Invoice.PaymentStatus.PAID:
            invoice.status = Invoice.Status.PAID
            invoice.payment_status = Invoice.PaymentStatus.PAID
            invoice.paid_at = timezone.now()
            invoice.save(update_fields=["status", "payment_status", "paid_at", "updated_at"])
            logger.info(f"Invoice {invoice.invoice_number} marked paid by user {acting_user_id}")

        return success_response({"invoice": cls.serialize(invoice)}, "Invoice marked as paid")

    @classmethod
    @transaction.atomic
    def update_status(cls, invoice_id: int, status: str, acting_user_id: int) -> Dict[str, Any]:
        if status not in STATUS_FLOW:
            raise ValidationError(
                f"Status must be one of: {', '.join(STATUS_FLOW)}", "status"
            )

        invoice = cls.get_for_update(invoice_id)

        if str(invoice.seller_id) != str(acting_user_id):
            raise deny(acting_user_id, "update_status", "invoice", invoice_id)

        if invoice.status not in STATUS_FLOW or STATUS_FLOW.index(status) <= STATUS_FLOW.index(invoice.status):
            raise InvalidStateError("invoice", invoice.status, f"move to {status}")

        invoice.status = status
        update_fields = ["status", "updated_at"]
        if status == Invoice.Status.PAID:
            invoice.payment_status = Invoice.PaymentStatus.PAID
            invoice.paid_at = timezone.now()
            update_fields += ["payment_status", "paid_at"]
        invoice.save(update_fields=update_fields)

        logger.info(f"Invoice {invoice.invoice_number} moved to {status}")
        return success_response({"invoice": cls.serialize(invoice)}, "Invoice status updated")

    @staticmethod
    def _is_party(invoice: Invoice, user_id: Any) -> bool:
        if user_id is None:
            return False
        return str(user_id) in (str(invoice.seller_id), str(invoice.buyer_id))
