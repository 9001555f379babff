"""
Stock Services - ledger, order fulfillment and trade records

Usage:
    from stock.services import StockLedgerService, OrderService

    # Seed a balance
    StockLedgerService.adjust_balance(owner_id=1, product_id=1, delta_quantity=100, new_unit_price="10.00")

    # Buyer orders, seller confirms
    result = OrderService.create(buyer_id=2, seller_id=1, items=[{"product_id": 1, "quantity": 30}])
    OrderService.confirm(result["order"]["id"], acting_seller_id=1)
"""

# Base utilities
from stock.services.base_service import (
    ServiceError,
    ValidationError,
    InvalidQuantityError,
    PriceRequiredError,
    NotFoundError,
    BusinessRuleError,
    InsufficientStockError,
    SellerHasNoStockError,
    InvalidStateError,
    UnauthorizedError,
    ConcurrentUpdateConflictError,
    success_response,
    error_response,
    paginate_queryset,
    to_decimal,
    round_decimal,
    round_money,
    generate_number,
    BaseService,
)

# Roles & concurrency
from .roles import (
    RoleCapabilities,
    CAPABILITIES,
    WALK_IN_ROLE,
    can_sell_to,
    can_buy_from,
    capabilities_for,
    target_bucket_for,
)
from .retry import run_with_retry

# Ledger
from .availability_service import AvailabilityService
from .ledger_service import StockLedgerService

# Trade records
from .invoice_service import InvoiceService
from .transaction_service import TransactionService

# Orders
from .order_service import OrderService


__all__ = [
    # Base
    "ServiceError",
    "ValidationError",
    "InvalidQuantityError",
    "PriceRequiredError",
    "NotFoundError",
    "BusinessRuleError",
    "InsufficientStockError",
    "SellerHasNoStockError",
    "InvalidStateError",
    "UnauthorizedError",
    "ConcurrentUpdateConflictError",
    "success_response",
    "error_response",
    "paginate_queryset",
    "to_decimal",
    "round_decimal",
    "round_money",
    "generate_number",
    "BaseService",

    # Roles & concurrency
    "RoleCapabilities",
    "CAPABILITIES",
    "WALK_IN_ROLE",
    "can_sell_to",
    "can_buy_from",
    "capabilities_for",
    "target_bucket_for",
    "run_with_retry",

    # Ledger
    "AvailabilityService",
    "StockLedgerService",

    # Trade records
    "InvoiceService",
    "TransactionService",

    # Orders
    "OrderService",
]
