import uuid as uuid_lib

from django.db import models
from django.utils import timezone

from main.models import User, Product


class StockBalance(models.Model):
    """
    Current quantity and resale price per owner, product and bucket.

    Exactly one row may exist per (owner, product, bucket). A row whose
    quantity reaches zero is deleted, never kept at zero.
    """

    class Bucket(models.TextChoices):
        INVENTORY = "INVENTORY", "Inventory"
        RAW_MATERIAL = "RAW_MATERIAL", "Raw Material"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    owner = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="stock_balances"
    )
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name="stock_balances"
    )
    bucket = models.CharField(
        max_length=20, choices=Bucket.choices, default=Bucket.INVENTORY
    )
    quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    unit_price = models.DecimalField(max_digits=15, decimal_places=2)

    # Denormalized from the catalog at write time
    product_name = models.CharField(max_length=100, blank=True, default="")
    product_sku = models.CharField(max_length=50, blank=True, default="")
    product_unit = models.CharField(max_length=20, blank=True, default="")

    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "stock_balances"
        ordering = ["product_name", "bucket"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "product", "bucket"],
                name="stock_balance_one_per_owner_product_bucket",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name="stock_balance_quantity_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["owner", "bucket"]),
        ]

    @property
    def total_value(self):
        return self.quantity * self.unit_price

    def __str__(self):
        return f"{self.product_name} @ {self.owner_id} [{self.bucket}]: {self.quantity}"


class LineItem(models.Model):
    """Line detail shared by orders, transactions and invoices."""

    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="+")
    product_name = models.CharField(max_length=100)
    product_sku = models.CharField(max_length=50)
    product_unit = models.CharField(max_length=20)
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    unit_price = models.DecimalField(max_digits=15, decimal_places=2)
    vat_rate = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    line_subtotal = models.DecimalField(max_digits=15, decimal_places=2)
    line_vat = models.DecimalField(max_digits=15, decimal_places=2)
    line_total = models.DecimalField(max_digits=15, decimal_places=2)

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.product_name} × {self.quantity}"


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        CONFIRMED = "CONFIRMED", "Confirmed"
        REJECTED = "REJECTED", "Rejected"
        CANCELLED = "CANCELLED", "Cancelled"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    order_number = models.CharField(max_length=50, db_index=True)

    seller = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="sales_orders"
    )
    seller_name = models.CharField(max_length=150)
    seller_role = models.CharField(max_length=20)

    buyer = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="purchase_orders"
    )
    buyer_name = models.CharField(max_length=150)
    buyer_role = models.CharField(max_length=20)

    subtotal = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    total_vat = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, default=0)

    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True
    )

    transaction = models.OneToOneField(
        "TradeTransaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    invoice = models.OneToOneField(
        "Invoice",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    rejection_reason = models.TextField(blank=True, default="")
    buyer_notes = models.TextField(blank=True, default="")
    seller_notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    # Set when the confirmed sale is cancelled and its stock returned to the seller
    reversed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["seller", "status"]),
            models.Index(fields=["buyer", "status"]),
        ]

    @property
    def is_terminal(self):
        return self.status != self.Status.PENDING

    def __str__(self):
        return f"{self.order_number} | {self.get_status_display()}"


class OrderItem(LineItem):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")

    class Meta:
        db_table = "order_items"
        ordering = ["id"]


class TradeTransaction(models.Model):
    """Append-only record of a completed trade."""

    class Type(models.TextChoices):
        SALE = "SALE", "Sale"
        PURCHASE = "PURCHASE", "Purchase"

    class Status(models.TextChoices):
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)

    seller = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="sale_transactions"
    )
    seller_name = models.CharField(max_length=150)
    seller_role = models.CharField(max_length=20)

    # Walk-in customers hold no account
    buyer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="purchase_transactions",
    )
    buyer_name = models.CharField(max_length=150)
    buyer_role = models.CharField(max_length=20)

    subtotal = models.DecimalField(max_digits=15, decimal_places=2)
    total_vat = models.DecimalField(max_digits=15, decimal_places=2)
    total_amount = models.DecimalField(max_digits=15, decimal_places=2)

    type = models.CharField(max_length=20, choices=Type.choices, default=Type.SALE)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.COMPLETED, db_index=True
    )
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    order = models.ForeignKey(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    reversal_of = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reversals",
    )

    is_walk_in = models.BooleanField(default=False)
    customer_phone = models.CharField(max_length=30, blank=True, default="")

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "transactions"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["seller", "timestamp"]),
            models.Index(fields=["buyer", "timestamp"]),
        ]

    def __str__(self):
        return f"TXN-{self.id} | {self.seller_name} → {self.buyer_name}"


class TransactionItem(LineItem):
    transaction = models.ForeignKey(
        TradeTransaction, on_delete=models.CASCADE, related_name="items"
    )

    class Meta:
        db_table = "transaction_items"
        ordering = ["id"]


class Invoice(models.Model):
    class Status(models.TextChoices):
        GENERATED = "GENERATED", "Generated"
        SENT = "SENT", "Sent"
        PAID = "PAID", "Paid"
        CANCELLED = "CANCELLED", "Cancelled"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    # Random suffix, collisions are possible and not deduplicated
    invoice_number = models.CharField(max_length=50, db_index=True)

    transaction = models.OneToOneField(
        TradeTransaction, on_delete=models.PROTECT, related_name="invoice"
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoices",
    )

    seller = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="issued_invoices"
    )
    seller_name = models.CharField(max_length=150)
    seller_role = models.CharField(max_length=20)

    buyer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="received_invoices",
    )
    buyer_name = models.CharField(max_length=150)
    buyer_role = models.CharField(max_length=20)

    subtotal = models.DecimalField(max_digits=15, decimal_places=2)
    total_vat = models.DecimalField(max_digits=15, decimal_places=2)
    total_amount = models.DecimalField(max_digits=15, decimal_places=2)

    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.GENERATED
    )
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )

    generated_at = models.DateTimeField(default=timezone.now)
    due_date = models.DateTimeField()
    paid_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    notes = models.TextField(blank=True, default="")
    is_walk_in = models.BooleanField(default=False)
    customer_phone = models.CharField(max_length=30, blank=True, default="")

    class Meta:
        db_table = "invoices"
        ordering = ["-generated_at"]
        indexes = [
            models.Index(fields=["seller", "generated_at"]),
            models.Index(fields=["buyer", "generated_at"]),
        ]

    def __str__(self):
        return f"{self.invoice_number} | {self.get_status_display()}"


class InvoiceItem(LineItem):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")

    class Meta:
        db_table = "invoice_items"
        ordering = ["id"]
