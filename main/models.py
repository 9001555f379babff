"""
Identity and catalog models.

Both are external collaborators of the stock ledger: the ledger reads a
user's role and display name, and a product's identity (sku, unit, VAT rate),
but never writes either.
"""

import uuid
from django.db import models


class User(models.Model):
    class RoleChoices(models.TextChoices):
        MANUFACTURER = "MANUFACTURER", "Manufacturer"
        DISTRIBUTOR = "DISTRIBUTOR", "Distributor"
        RETAILER = "RETAILER", "Retailer"
        BUYER = "BUYER", "Buyer"

    class UserStatus(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        SUSPENDED = "SUSPENDED", "Suspended"

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50, blank=True, default='')
    business_name = models.CharField(max_length=150, blank=True, default='')
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=30, blank=True, default='')

    role = models.CharField(
        max_length=20,
        choices=RoleChoices.choices,
        default=RoleChoices.BUYER
    )

    status = models.CharField(
        max_length=10,
        choices=UserStatus.choices,
        default=UserStatus.ACTIVE
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]

    @property
    def name(self) -> str:
        if self.business_name:
            return self.business_name
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return f"{self.name} ({self.get_role_display()})"


class Product(models.Model):
    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    manufacturer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name="products",
        null=True,
        blank=True,
    )
    name = models.CharField(max_length=100)
    sku = models.CharField(max_length=50, unique=True)
    unit = models.CharField(max_length=20, default='piece')
    vat_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=0,
        help_text="VAT percentage, 0-100",
    )
    description = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(vat_rate__gte=0) & models.Q(vat_rate__lte=100),
                name="product_vat_rate_range",
            ),
        ]

    def __str__(self):
        return f"{self.name} [{self.sku}]"
