from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.utils import timezone

from stock.models import StockBalance, TradeTransaction, Invoice, Order
from stock.services import (
    TransactionService, InvoiceService, OrderService,
    ValidationError, NotFoundError, InsufficientStockError,
    InvalidStateError, UnauthorizedError,
)


pytestmark = pytest.mark.django_db

RAW_MATERIAL = StockBalance.Bucket.RAW_MATERIAL


def cart(*lines):
    return [{"product_id": p.id, "quantity": q} for p, q in lines]


class TestRecord:

    def test_totals_come_from_the_lines(self, distributor, retailer, product):
        lines = [{
            "product_id": product.id,
            "product_name": "Steel Bolt",
            "product_sku": "BOLT-001",
            "product_unit": "piece",
            "quantity": Decimal("3"),
            "unit_price": Decimal("9.99"),
            "vat_rate": Decimal("10.00"),
            "line_subtotal": Decimal("29.97"),
            "line_vat": Decimal("3.00"),
            "line_total": Decimal("32.97"),
        }]

        txn = TransactionService.record(distributor.id, retailer.id, lines)

        txn.refresh_from_db()
        assert txn.subtotal == Decimal("29.97")
        assert txn.total_vat == Decimal("3.00")
        assert txn.total_amount == Decimal("32.97")
        assert txn.seller_name == "Wide Distribution"
        assert txn.buyer_role == "RETAILER"
        assert txn.status == TradeTransaction.Status.COMPLETED
        assert txn.items.count() == 1

    def test_empty_lines_rejected(self, distributor, retailer):
        with pytest.raises(ValidationError):
            TransactionService.record(distributor.id, retailer.id, [])


class TestDirectSale:

    def test_moves_stock_and_issues_trade_invoice(self, distributor, retailer, product, stock, balance_of):
        stock(distributor, product, 50, "10.00")

        result = TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 20)))

        assert result["success"] is True
        assert result["degraded"] is False
        assert balance_of(distributor, product) == Decimal("30")
        assert balance_of(retailer, product) == Decimal("20")
        assert result["transaction"]["total_amount"] == "220.00"
        assert result["transaction"]["order_id"] is None

        invoice = Invoice.objects.get(id=result["invoice"]["id"])
        assert invoice.status == Invoice.Status.GENERATED
        assert invoice.payment_status == Invoice.PaymentStatus.PENDING
        assert invoice.due_date - invoice.generated_at == timedelta(days=30)
        assert invoice.items.count() == 1

    def test_sale_into_existing_balance(self, other_manufacturer, distributor, product, stock, balance_of):
        stock(distributor, product, 10, "9.00")
        stock(other_manufacturer, product, 10, "7.00")

        result = TransactionService.direct_sale(other_manufacturer.id, distributor.id, cart((product, 4)))

        assert result["transaction"]["seller"]["role"] == "MANUFACTURER"
        assert balance_of(distributor, product) == Decimal("14")
        assert StockBalance.objects.get(owner=distributor).unit_price == Decimal("9.00")

    def test_buyer_unit_price_seeds_new_row(self, distributor, retailer, product, stock):
        stock(distributor, product, 10, "10.00")

        TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 2)), buyer_unit_price="18.50")

        sold = TradeTransaction.objects.get()
        assert sold.items.get().unit_price == Decimal("10.00")
        assert StockBalance.objects.get(owner=retailer).unit_price == Decimal("18.50")

    def test_role_not_allowed(self, retailer, distributor, product, stock):
        stock(retailer, product, 10)
        with pytest.raises(ValidationError) as exc:
            TransactionService.direct_sale(retailer.id, distributor.id, cart((product, 1)))
        assert exc.value.code == "ROLE_NOT_ALLOWED"

    def test_cannot_sell_to_self(self, distributor, product, stock):
        stock(distributor, product, 10)
        with pytest.raises(ValidationError):
            TransactionService.direct_sale(distributor.id, distributor.id, cart((product, 1)))

    def test_unknown_buyer(self, distributor, product, stock):
        stock(distributor, product, 10)
        with pytest.raises(NotFoundError):
            TransactionService.direct_sale(distributor.id, 999, cart((product, 1)))

    def test_insufficient_stock_changes_nothing(self, distributor, retailer, product, stock, balance_of):
        stock(distributor, product, 5)
        with pytest.raises(InsufficientStockError):
            TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 6)))
        assert balance_of(distributor, product) == Decimal("5")
        assert not TradeTransaction.objects.exists()

    def test_invoice_failure_keeps_the_sale(self, distributor, retailer, product, stock, balance_of, caplog):
        stock(distributor, product, 10)

        with mock.patch.object(InvoiceService, "generate", side_effect=RuntimeError("printer on fire")):
            result = TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 3)))

        assert result["degraded"] is True
        assert result["invoice"] is None
        assert TradeTransaction.objects.count() == 1
        assert balance_of(retailer, product) == Decimal("3")
        assert "Invoice generation failed" in caplog.text


class TestWalkInSale:

    def test_stock_leaves_the_ledger(self, retailer, product, stock, balance_of):
        stock(retailer, product, 10, "12.00")

        result = TransactionService.walk_in_sale(retailer.id, cart((product, 4)), "Ann", "+15550100")

        assert balance_of(retailer, product) == Decimal("6")
        txn = result["transaction"]
        assert txn["is_walk_in"] is True
        assert txn["buyer"] == {"id": None, "name": "Ann", "role": "WALK_IN"}
        assert txn["customer_phone"] == "+15550100"
        assert txn["total_amount"] == "52.80"

    def test_invoice_is_born_paid(self, retailer, product, stock):
        stock(retailer, product, 10)

        result = TransactionService.walk_in_sale(retailer.id, cart((product, 1)), customer_phone="+15550100")

        invoice = Invoice.objects.get(id=result["invoice"]["id"])
        assert invoice.status == Invoice.Status.PAID
        assert invoice.payment_status == Invoice.PaymentStatus.PAID
        assert invoice.paid_at is not None
        assert invoice.due_date == invoice.generated_at
        assert invoice.notes == "Walk-in customer sale. Phone: +15550100"

    def test_defaults_for_anonymous_customer(self, retailer, product, stock):
        stock(retailer, product, 10)

        result = TransactionService.walk_in_sale(retailer.id, cart((product, 1)), "  ", "")

        assert result["transaction"]["buyer"]["name"] == "Walk-in Customer"
        assert result["transaction"]["customer_phone"] == "N/A"
        assert result["invoice"]["notes"] == "Walk-in customer sale. Phone: N/A"

    def test_selling_out_removes_the_row(self, retailer, product, stock):
        stock(retailer, product, 3)
        TransactionService.walk_in_sale(retailer.id, cart((product, 3)))
        assert not StockBalance.objects.filter(owner=retailer).exists()

    def test_buyer_role_holds_no_inventory(self, buyer, product):
        with pytest.raises(ValidationError) as exc:
            TransactionService.walk_in_sale(buyer.id, cart((product, 1)))
        assert exc.value.code == "ROLE_NOT_ALLOWED"

    def test_insufficient_stock(self, retailer, product, stock):
        stock(retailer, product, 1)
        with pytest.raises(InsufficientStockError):
            TransactionService.walk_in_sale(retailer.id, cart((product, 2)))


class TestCancel:

    def test_trade_sale_returns_stock_and_voids_invoice(self, distributor, retailer, product, stock, balance_of):
        stock(distributor, product, 10, "10.00")
        sale = TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 10)))
        assert balance_of(distributor, product) is None

        result = TransactionService.cancel(sale["transaction"]["id"], distributor.id)

        assert result["transaction"]["status"] == TradeTransaction.Status.CANCELLED
        assert result["transaction"]["cancelled_by_id"] == distributor.id
        assert balance_of(distributor, product) == Decimal("10")
        assert balance_of(retailer, product) is None
        assert StockBalance.objects.get(owner=distributor).unit_price == Decimal("10.00")
        assert Invoice.objects.get(id=sale["invoice"]["id"]).status == Invoice.Status.CANCELLED

    def test_manufacturer_purchase_is_taken_from_raw_materials(self, manufacturer, distributor,
                                                               product, stock, balance_of):
        stock(distributor, product, 10)
        order = OrderService.create(manufacturer.id, distributor.id, cart((product, 6)))["order"]
        confirmed = OrderService.confirm(order["id"], distributor.id)

        TransactionService.cancel(confirmed["transaction"]["id"], distributor.id)

        assert balance_of(manufacturer, product, RAW_MATERIAL) is None
        assert balance_of(distributor, product) == Decimal("10")

    def test_order_records_the_reversal(self, distributor, retailer, product, stock):
        stock(distributor, product, 10)
        order = OrderService.create(retailer.id, distributor.id, cart((product, 4)))["order"]
        confirmed = OrderService.confirm(order["id"], distributor.id)
        assert confirmed["order"]["reversed_at"] is None

        result = TransactionService.cancel(confirmed["transaction"]["id"], distributor.id)

        stored = Order.objects.get(id=order["id"])
        assert stored.status == Order.Status.CONFIRMED
        assert stored.reversed_at is not None
        assert stored.reversed_at.isoformat() == result["transaction"]["cancelled_at"]
        assert OrderService.get(order["id"], retailer.id)["order"]["reversed_at"] is not None

    def test_direct_sale_cancel_touches_no_order(self, distributor, retailer, product, stock):
        stock(distributor, product, 10)
        pending = OrderService.create(retailer.id, distributor.id, cart((product, 1)))["order"]
        sale = TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 5)))

        TransactionService.cancel(sale["transaction"]["id"], distributor.id)

        assert Order.objects.get(id=pending["id"]).reversed_at is None

    def test_fails_when_buyer_already_moved_the_stock(self, distributor, retailer, buyer, product, stock, balance_of):
        stock(distributor, product, 10)
        sale = TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 5)))
        TransactionService.direct_sale(retailer.id, buyer.id, cart((product, 3)))

        with pytest.raises(InsufficientStockError):
            TransactionService.cancel(sale["transaction"]["id"], distributor.id)

        assert TradeTransaction.objects.get(id=sale["transaction"]["id"]).status == TradeTransaction.Status.COMPLETED
        assert balance_of(distributor, product) == Decimal("5")

    def test_walk_in_sale_recredits_seller(self, retailer, product, stock, balance_of):
        stock(retailer, product, 4, "12.00")
        sale = TransactionService.walk_in_sale(retailer.id, cart((product, 4)))
        assert balance_of(retailer, product) is None

        TransactionService.cancel(sale["transaction"]["id"], retailer.id)

        balance = StockBalance.objects.get(owner=retailer)
        assert balance.quantity == Decimal("4")
        assert balance.unit_price == Decimal("12.00")
        assert Invoice.objects.get(id=sale["invoice"]["id"]).status == Invoice.Status.CANCELLED

    def test_walk_in_recredit_keeps_current_price(self, retailer, product, stock):
        stock(retailer, product, 10, "12.00")
        sale = TransactionService.walk_in_sale(retailer.id, cart((product, 2)))
        stock(retailer, product, 1, "14.00")

        TransactionService.cancel(sale["transaction"]["id"], retailer.id)

        balance = StockBalance.objects.get(owner=retailer)
        assert balance.quantity == Decimal("11")
        assert balance.unit_price == Decimal("14.00")

    def test_only_the_seller_may_cancel(self, distributor, retailer, product, stock):
        stock(distributor, product, 10)
        sale = TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 5)))

        with pytest.raises(UnauthorizedError):
            TransactionService.cancel(sale["transaction"]["id"], retailer.id)

    def test_double_cancel(self, distributor, retailer, product, stock):
        stock(distributor, product, 10)
        sale = TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 5)))
        TransactionService.cancel(sale["transaction"]["id"], distributor.id)

        with pytest.raises(InvalidStateError):
            TransactionService.cancel(sale["transaction"]["id"], distributor.id)

    def test_unknown_transaction(self, distributor):
        with pytest.raises(NotFoundError):
            TransactionService.cancel(999, distributor.id)


class TestQueries:

    @pytest.fixture
    def sales(self, distributor, retailer, buyer, product, stock):
        stock(distributor, product, 100, "10.00")
        first = TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 10)))
        second = TransactionService.direct_sale(retailer.id, buyer.id, cart((product, 2)))
        return first["transaction"], second["transaction"]

    def test_get_for_parties_only(self, sales, distributor, retailer, buyer):
        first, _ = sales
        assert TransactionService.get(first["id"], retailer.id)["transaction"]["id"] == first["id"]
        assert TransactionService.get(first["id"], distributor.id)["transaction"]["items"]

        with pytest.raises(UnauthorizedError):
            TransactionService.get(first["id"], buyer.id)
        with pytest.raises(UnauthorizedError):
            TransactionService.get(first["id"], None)

    def test_list_by_side(self, sales, retailer):
        first, second = sales

        every = TransactionService.list_for_user(retailer.id)["transactions"]
        assert {t["id"] for t in every} == {first["id"], second["id"]}
        assert "items" not in every[0]

        selling = TransactionService.list_for_user(retailer.id, side="seller")["transactions"]
        assert [t["id"] for t in selling] == [second["id"]]

        buying = TransactionService.list_for_user(retailer.id, side="buyer")["transactions"]
        assert [t["id"] for t in buying] == [first["id"]]

    def test_list_by_status(self, sales, retailer):
        _, second = sales
        TransactionService.cancel(second["id"], retailer.id)

        cancelled = TransactionService.list_for_user(retailer.id, status="cancelled")
        assert [t["id"] for t in cancelled["transactions"]] == [second["id"]]
        assert cancelled["pagination"]["total_items"] == 1

    def test_list_rejects_unknown_side(self, retailer):
        with pytest.raises(ValidationError):
            TransactionService.list_for_user(retailer.id, side="middle")

    def test_stats_count_completed_only(self, sales, retailer):
        stats = TransactionService.get_stats(retailer.id)["stats"]

        # bought 10 @ 10.00 + 10% VAT, sold 2 @ 10.00 + 10% VAT
        assert stats["sales_count"] == 1
        assert stats["purchases_count"] == 1
        assert stats["total_transactions"] == 2
        assert Decimal(stats["sales_revenue"]) == Decimal("22.00")
        assert Decimal(stats["purchases_expense"]) == Decimal("110.00")
        assert Decimal(stats["net"]) == Decimal("-88.00")

        _, second = sales
        TransactionService.cancel(second["id"], retailer.id)
        stats = TransactionService.get_stats(retailer.id)["stats"]
        assert stats["sales_count"] == 0
        assert Decimal(stats["net"]) == Decimal("-110.00")

    def test_stats_for_idle_user(self, buyer):
        stats = TransactionService.get_stats(buyer.id)["stats"]
        assert stats["total_transactions"] == 0
        assert stats["sales_revenue"] == "0"


def test_timestamps_are_set(distributor, retailer, product, stock):
    stock(distributor, product, 1)
    before = timezone.now()
    TransactionService.direct_sale(distributor.id, retailer.id, cart((product, 1)))
    assert TradeTransaction.objects.get().timestamp >= before
