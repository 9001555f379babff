from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging
import random

from django.conf import settings
from django.db.models import Model
from django.utils import timezone


security_logger = logging.getLogger("stock.security")

MONEY_PLACES = 2
QUANTITY_PLACES = 4

# Column capacity: quantities are DECIMAL(15, 4), money is DECIMAL(15, 2)
MAX_QUANTITY = Decimal("1e11")
MAX_AMOUNT = Decimal("1e13")


class ServiceError(Exception):
    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    def __init__(self, message: str, field: str = None, details: Dict = None,
                 code: str = "VALIDATION_ERROR"):
        super().__init__(message, code, details)
        self.field = field


class InvalidQuantityError(ValidationError):
    def __init__(self, message: str = "Invalid quantity specified", field: str = "quantity"):
        super().__init__(message, field, code="INVALID_QUANTITY")


class PriceRequiredError(ValidationError):
    def __init__(self, message: str = "A unit price is required to create a stock balance"):
        super().__init__(message, "unit_price", code="PRICE_REQUIRED")


class NotFoundError(ServiceError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class BusinessRuleError(ServiceError):
    def __init__(self, message: str, rule: str = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", {"rule": rule})


class InsufficientStockError(ServiceError):
    def __init__(self, item_name: str, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient stock for {item_name}: required {required}, available {available}",
            "INSUFFICIENT_STOCK",
            {"item": item_name, "required": str(required), "available": str(available)}
        )


class SellerHasNoStockError(ServiceError):
    def __init__(self, item_name: str, seller_id: Any):
        super().__init__(
            f"Seller does not have {item_name} in inventory",
            "SELLER_HAS_NO_STOCK",
            {"item": item_name, "seller_id": str(seller_id)}
        )


class InvalidStateError(ServiceError):
    def __init__(self, resource: str, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} {resource} in status {current_status}",
            "INVALID_STATE",
            {"resource": resource, "status": current_status, "action": action}
        )


class UnauthorizedError(ServiceError):
    def __init__(self, message: str = "You are not authorized to perform this action",
                 action: str = None):
        super().__init__(message, "UNAUTHORIZED", {"action": action})


class ConcurrentUpdateConflictError(ServiceError):
    def __init__(self, message: str = "Stock balance was modified concurrently, please retry"):
        super().__init__(message, "CONCURRENT_UPDATE_CONFLICT")


def deny(actor_id: Any, action: str, resource: str, resource_id: Any) -> UnauthorizedError:
    """Log a rejected actor and build the error for the caller to raise."""
    security_logger.warning(
        f"Unauthorized {action} on {resource} {resource_id} by user {actor_id}"
    )
    return UnauthorizedError(action=action)


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def error_response(message: str, code: str = "ERROR", details: Dict = None) -> Dict:
    return {
        "success": False,
        "error": message,
        "code": code,
        "details": details or {}
    }


def paginate_queryset(queryset, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page)
    per_page = min(max(1, per_page), 100)

    total = queryset.count()
    total_pages = (total + per_page - 1) // per_page

    offset = (page - 1) * per_page
    items = list(queryset[offset:offset + per_page])

    return items, {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def to_decimal(value: Any, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result


def round_decimal(value: Decimal, places: int = QUANTITY_PLACES) -> Decimal:
    if value is None:
        return Decimal("0")
    quantize_str = "0." + "0" * places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    return round_decimal(value, MONEY_PLACES)


def quantity_in_range(value: Decimal) -> bool:
    return abs(value) < MAX_QUANTITY


def amount_in_range(value: Decimal) -> bool:
    return abs(value) < MAX_AMOUNT


def generate_number(prefix: str) -> str:
    """PREFIX-YYYYMMDD-NNNNN with a random five digit suffix."""
    date_part = timezone.localdate().strftime("%Y%m%d")
    return f"{prefix}-{date_part}-{random.randint(0, 99999):05d}"


def ledger_setting(name: str) -> Any:
    return settings.STOCK_LEDGER[name]


def min_quantity() -> Decimal:
    return Decimal(str(ledger_setting("MIN_QUANTITY")))


def min_price() -> Decimal:
    return Decimal(str(ledger_setting("MIN_PRICE")))


def isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


class BaseService:
    model = None

    @classmethod
    def get_by_id(cls, id: int) -> Optional[Model]:
        try:
            return cls.model.objects.get(id=id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            return None

    @classmethod
    def get_or_404(cls, id: int) -> Model:
        obj = cls.get_by_id(id)
        if not obj:
            raise NotFoundError(cls.model.__name__, id)
        return obj

    @classmethod
    def get_for_update(cls, id: int) -> Model:
        """Row-locked fetch; call inside transaction.atomic."""
        try:
            return cls.model.objects.select_for_update().get(id=id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(cls.model.__name__, id)
