import pytest

from stock.models import Invoice
from stock.services import (
    InvoiceService, TransactionService,
    ValidationError, NotFoundError, InvalidStateError, UnauthorizedError,
)


pytestmark = pytest.mark.django_db


@pytest.fixture
def invoice(distributor, retailer, product, stock):
    stock(distributor, product, 10)
    sale = TransactionService.direct_sale(
        distributor.id, retailer.id, [{"product_id": product.id, "quantity": 2}]
    )
    return Invoice.objects.get(id=sale["invoice"]["id"])


class TestGenerate:

    def test_copies_transaction_snapshot(self, invoice):
        txn = invoice.transaction
        assert invoice.invoice_number.startswith("INV-")
        assert invoice.total_amount == txn.total_amount
        assert invoice.seller_name == "Wide Distribution"
        assert invoice.buyer_name == "Corner Shop"
        assert [i.product_sku for i in invoice.items.all()] == ["BOLT-001"]

    def test_custom_due_days_and_notes(self, invoice):
        txn = invoice.transaction
        Invoice.objects.filter(id=invoice.id).delete()

        fresh = InvoiceService.generate(txn, due_days=7, notes="net 7")

        assert (fresh.due_date - fresh.generated_at).days == 7
        assert fresh.notes == "net 7"
        assert fresh.status == Invoice.Status.GENERATED


class TestMarkPaid:

    @pytest.mark.parametrize("party", ["distributor", "retailer"])
    def test_either_party_may_mark_paid(self, invoice, party, request):
        user = request.getfixturevalue(party)

        result = InvoiceService.mark_paid(invoice.id, user.id)

        assert result["invoice"]["status"] == Invoice.Status.PAID
        assert result["invoice"]["payment_status"] == Invoice.PaymentStatus.PAID
        assert result["invoice"]["paid_at"] is not None

    def test_already_paid_is_left_alone(self, invoice, retailer):
        first = InvoiceService.mark_paid(invoice.id, retailer.id)["invoice"]["paid_at"]
        second = InvoiceService.mark_paid(invoice.id, retailer.id)["invoice"]["paid_at"]
        assert first == second

    def test_outsider_is_refused(self, invoice, buyer, caplog):
        with caplog.at_level("WARNING", logger="stock.security"):
            with pytest.raises(UnauthorizedError):
                InvoiceService.mark_paid(invoice.id, buyer.id)
        assert "mark_paid" in caplog.text
        invoice.refresh_from_db()
        assert invoice.payment_status == Invoice.PaymentStatus.PENDING

    def test_cancelled_invoice_cannot_be_paid(self, invoice, distributor, retailer):
        TransactionService.cancel(invoice.transaction_id, distributor.id)

        with pytest.raises(InvalidStateError):
            InvoiceService.mark_paid(invoice.id, retailer.id)

    def test_unknown_invoice(self, retailer):
        with pytest.raises(NotFoundError):
            InvoiceService.mark_paid(999, retailer.id)


class TestUpdateStatus:

    def test_moves_forward(self, invoice, distributor):
        sent = InvoiceService.update_status(invoice.id, Invoice.Status.SENT, distributor.id)
        assert sent["invoice"]["status"] == Invoice.Status.SENT
        assert sent["invoice"]["payment_status"] == Invoice.PaymentStatus.PENDING

        paid = InvoiceService.update_status(invoice.id, Invoice.Status.PAID, distributor.id)
        assert paid["invoice"]["payment_status"] == Invoice.PaymentStatus.PAID
        assert paid["invoice"]["paid_at"] is not None

    def test_may_skip_ahead(self, invoice, distributor):
        result = InvoiceService.update_status(invoice.id, Invoice.Status.PAID, distributor.id)
        assert result["invoice"]["status"] == Invoice.Status.PAID

    def test_never_moves_back(self, invoice, distributor):
        InvoiceService.update_status(invoice.id, Invoice.Status.SENT, distributor.id)

        for status in (Invoice.Status.SENT, Invoice.Status.GENERATED):
            with pytest.raises(InvalidStateError):
                InvoiceService.update_status(invoice.id, status, distributor.id)

    def test_cancelled_is_not_a_target(self, invoice, distributor):
        with pytest.raises(ValidationError):
            InvoiceService.update_status(invoice.id, Invoice.Status.CANCELLED, distributor.id)

    def test_cancelled_invoice_is_frozen(self, invoice, distributor):
        TransactionService.cancel(invoice.transaction_id, distributor.id)
        with pytest.raises(InvalidStateError):
            InvoiceService.update_status(invoice.id, Invoice.Status.PAID, distributor.id)

    def test_walk_in_invoice_is_already_at_the_end_of_the_flow(self, retailer, product, stock):
        stock(retailer, product, 5)
        sale = TransactionService.walk_in_sale(retailer.id, [{"product_id": product.id, "quantity": 1}])

        for status in (Invoice.Status.SENT, Invoice.Status.PAID):
            with pytest.raises(InvalidStateError):
                InvoiceService.update_status(sale["invoice"]["id"], status, retailer.id)

        invoice = Invoice.objects.get(id=sale["invoice"]["id"])
        assert invoice.status == Invoice.Status.PAID
        assert invoice.payment_status == Invoice.PaymentStatus.PAID

    def test_buyer_cannot_change_status(self, invoice, retailer):
        with pytest.raises(UnauthorizedError):
            InvoiceService.update_status(invoice.id, Invoice.Status.SENT, retailer.id)


class TestQueries:

    def test_get_for_parties_only(self, invoice, retailer, buyer):
        data = InvoiceService.get(invoice.id, retailer.id)["invoice"]
        assert data["invoice_number"] == invoice.invoice_number
        assert len(data["items"]) == 1

        with pytest.raises(UnauthorizedError):
            InvoiceService.get(invoice.id, buyer.id)

    def test_list_by_side(self, invoice, distributor, retailer):
        assert InvoiceService.list_for_user(distributor.id, side="seller")["pagination"]["total_items"] == 1
        assert InvoiceService.list_for_user(distributor.id, side="buyer")["pagination"]["total_items"] == 0
        assert [i["id"] for i in InvoiceService.list_for_user(retailer.id)["invoices"]] == [invoice.id]

    def test_list_rejects_unknown_side(self, retailer):
        with pytest.raises(ValidationError):
            InvoiceService.list_for_user(retailer.id, side="sideways")
