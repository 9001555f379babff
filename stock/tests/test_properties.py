from collections import defaultdict
from decimal import Decimal

from hypothesis import given, settings, strategies as st
from hypothesis.extra.django import TestCase

from main.models import User, Product
from stock.models import StockBalance
from stock.services import StockLedgerService, TransactionService, ServiceError


Bucket = StockBalance.Bucket

adjustments = st.lists(
    st.tuples(
        st.integers(min_value=0, max_value=1),
        st.sampled_from([Bucket.INVENTORY, Bucket.RAW_MATERIAL]),
        st.integers(min_value=-20, max_value=20),
    ),
    max_size=25,
)


class LedgerPropertyTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.owner = User.objects.create(
            first_name="Maker", email="maker@example.com", role=User.RoleChoices.MANUFACTURER
        )
        cls.customer = User.objects.create(
            first_name="Shop", email="shop@example.com", role=User.RoleChoices.RETAILER
        )
        cls.products = [
            Product.objects.create(manufacturer=cls.owner, name=f"Part {i}", sku=f"PART-{i}", unit="piece")
            for i in range(2)
        ]

    @settings(max_examples=40, deadline=None)
    @given(adjustments)
    def test_adjustments_match_a_running_tally(self, steps):
        expected = defaultdict(Decimal)

        for index, bucket, delta in steps:
            product = self.products[index]
            key = (product.id, bucket)
            try:
                StockLedgerService.adjust_balance(self.owner.id, product.id, delta, "2.50", bucket)
            except ServiceError:
                # Rejected writes leave the tally untouched
                assert delta == 0 or expected[key] + delta < 0
                continue
            expected[key] += delta

        rows = StockBalance.objects.filter(owner=self.owner)
        keys = [(row.product_id, row.bucket) for row in rows]
        assert len(keys) == len(set(keys))

        for row in rows:
            assert row.quantity > 0
        actual = {(row.product_id, row.bucket): row.quantity for row in rows}
        assert actual == {key: qty for key, qty in expected.items() if qty > 0}

    @settings(max_examples=25, deadline=None)
    @given(st.lists(st.integers(min_value=1, max_value=15), min_size=1, max_size=8))
    def test_trade_conserves_stock(self, quantities):
        product = self.products[0]
        StockLedgerService.adjust_balance(self.owner.id, product.id, 50, "4.00")

        for quantity in quantities:
            try:
                TransactionService.direct_sale(
                    self.owner.id, self.customer.id, [{"product_id": product.id, "quantity": quantity}]
                )
            except ServiceError:
                pass

        total = sum(
            StockBalance.objects.filter(product=product, bucket=Bucket.INVENTORY).values_list("quantity", flat=True),
            Decimal("0"),
        )
        assert total == Decimal("50")
