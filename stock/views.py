import json
import logging

from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from stock.services import (
    ServiceError, ValidationError, NotFoundError, BusinessRuleError,
    InsufficientStockError, SellerHasNoStockError, InvalidStateError,
    UnauthorizedError, ConcurrentUpdateConflictError,
    error_response,
    StockLedgerService, OrderService, TransactionService, InvoiceService,
)


logger = logging.getLogger(__name__)

ACTOR_HEADER = "HTTP_X_USER_ID"

STATUS_BY_ERROR = [
    (ValidationError, 400),
    (InsufficientStockError, 400),
    (SellerHasNoStockError, 400),
    (BusinessRuleError, 400),
    (NotFoundError, 404),
    (UnauthorizedError, 403),
    (InvalidStateError, 409),
    (ConcurrentUpdateConflictError, 409),
]


def handle_service_error(e: Exception):
    if isinstance(e, ServiceError):
        for error_class, status in STATUS_BY_ERROR:
            if isinstance(e, error_class):
                details = dict(e.details)
                if isinstance(e, ValidationError) and e.field:
                    details.setdefault("field", e.field)
                return JsonResponse(error_response(e.message, e.code, details), status=status)
        return JsonResponse(error_response(e.message, e.code, e.details), status=500)

    logger.exception(f"Unhandled error: {e}")
    return JsonResponse(error_response("Internal server error", "SERVER_ERROR"), status=500)


class BaseStockView(View):
    @method_decorator(csrf_exempt)
    def dispatch(self, request, *args, **kwargs):
        return super().dispatch(request, *args, **kwargs)

    def get_json_body(self, request):
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Request body must be valid JSON", "body")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object", "body")
        return data

    def get_actor_id(self, request):
        """Acting user from the X-User-Id header set by the upstream gateway."""
        raw = request.META.get(ACTOR_HEADER, "").strip()
        if not raw:
            raise UnauthorizedError("Missing X-User-Id header")
        try:
            return int(raw)
        except ValueError:
            raise ValidationError("X-User-Id must be an integer", "X-User-Id")

    def get_int(self, request, name: str, default: int = None):
        raw = request.GET.get(name)
        if raw in (None, ""):
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(f"{name} must be an integer", name)

    def success(self, data: dict, status: int = 200):
        return JsonResponse({"success": True, **data}, status=status)


# ==================== ORDERS ====================

class OrderListView(BaseStockView):

    def get(self, request):
        try:
            actor_id = self.get_actor_id(request)
            side = request.GET.get("as", "buyer")
            status = request.GET.get("status") or None
            page = self.get_int(request, "page", 1)
            per_page = self.get_int(request, "per_page", 20)

            if side == "seller":
                result = OrderService.list_for_seller(actor_id, status, page, per_page)
            elif side == "buyer":
                result = OrderService.list_for_buyer(actor_id, status, page, per_page)
            else:
                raise ValidationError("as must be seller or buyer", "as")

            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            actor_id = self.get_actor_id(request)
            data = self.get_json_body(request)

            if data.get("seller_id") is None:
                raise ValidationError("seller_id is required", "seller_id")

            result = OrderService.create(
                buyer_id=actor_id,
                seller_id=data["seller_id"],
                items=data.get("items"),
                buyer_notes=data.get("buyer_notes", ""),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class OrderDetailView(BaseStockView):

    def get(self, request, order_id):
        try:
            result = OrderService.get(order_id, self.get_actor_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class OrderConfirmView(BaseStockView):

    def post(self, request, order_id):
        try:
            actor_id = self.get_actor_id(request)
            data = self.get_json_body(request)
            result = OrderService.confirm(
                order_id,
                actor_id,
                resale_price_override=data.get("resale_price"),
                seller_notes=data.get("seller_notes", ""),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class OrderRejectView(BaseStockView):

    def post(self, request, order_id):
        try:
            actor_id = self.get_actor_id(request)
            data = self.get_json_body(request)
            result = OrderService.reject(order_id, actor_id, reason=data.get("reason", ""))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class OrderCancelView(BaseStockView):

    def post(self, request, order_id):
        try:
            result = OrderService.cancel(order_id, self.get_actor_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== STOCK ====================

class StockBalanceListView(BaseStockView):

    def get(self, request):
        try:
            owner_id = self.get_int(request, "owner_id")
            if owner_id is None:
                owner_id = self.get_actor_id(request)
            result = StockLedgerService.get_owner_balances(owner_id, request.GET.get("bucket") or None)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class StockAdjustView(BaseStockView):

    def post(self, request):
        try:
            actor_id = self.get_actor_id(request)
            data = self.get_json_body(request)

            if data.get("product_id") is None:
                raise ValidationError("product_id is required", "product_id")

            kwargs = {}
            if data.get("bucket"):
                kwargs["bucket"] = data["bucket"]

            result = StockLedgerService.adjust_balance(
                owner_id=actor_id,
                product_id=data["product_id"],
                delta_quantity=data.get("quantity"),
                new_unit_price=data.get("unit_price"),
                **kwargs
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class StockAvailabilityView(BaseStockView):

    def get(self, request):
        try:
            owner_id = self.get_int(request, "owner_id")
            product_id = self.get_int(request, "product_id")
            if owner_id is None or product_id is None:
                raise ValidationError("owner_id and product_id are required")

            result = StockLedgerService.check_availability(
                owner_id, product_id, request.GET.get("quantity")
            )
            return self.success({
                "sufficient": result["sufficient"],
                "available": str(result["available"]),
            })
        except Exception as e:
            return handle_service_error(e)


# ==================== SALES ====================

class DirectSaleView(BaseStockView):
    """Walk-in counter sale."""

    def post(self, request):
        try:
            actor_id = self.get_actor_id(request)
            data = self.get_json_body(request)
            result = TransactionService.walk_in_sale(
                seller_id=actor_id,
                items=data.get("items"),
                customer_name=data.get("customer_name", ""),
                customer_phone=data.get("customer_phone", ""),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class SaleView(BaseStockView):
    """Account-to-account sale without an order."""

    def post(self, request):
        try:
            actor_id = self.get_actor_id(request)
            data = self.get_json_body(request)

            if data.get("buyer_id") is None:
                raise ValidationError("buyer_id is required", "buyer_id")

            result = TransactionService.direct_sale(
                seller_id=actor_id,
                buyer_id=data["buyer_id"],
                items=data.get("items"),
                buyer_unit_price=data.get("buyer_unit_price"),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


# ==================== TRANSACTIONS ====================

class TransactionListView(BaseStockView):

    def get(self, request):
        try:
            result = TransactionService.list_for_user(
                self.get_actor_id(request),
                side=request.GET.get("side", "all"),
                status=request.GET.get("status") or None,
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class TransactionDetailView(BaseStockView):

    def get(self, request, transaction_id):
        try:
            result = TransactionService.get(transaction_id, self.get_actor_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class TransactionStatsView(BaseStockView):

    def get(self, request):
        try:
            result = TransactionService.get_stats(self.get_actor_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class TransactionCancelView(BaseStockView):

    def post(self, request, transaction_id):
        try:
            result = TransactionService.cancel(transaction_id, self.get_actor_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== INVOICES ====================

class InvoiceListView(BaseStockView):

    def get(self, request):
        try:
            result = InvoiceService.list_for_user(
                self.get_actor_id(request),
                side=request.GET.get("side", "all"),
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class InvoiceDetailView(BaseStockView):

    def get(self, request, invoice_id):
        try:
            result = InvoiceService.get(invoice_id, self.get_actor_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class InvoiceMarkPaidView(BaseStockView):

    def post(self, request, invoice_id):
        try:
            result = InvoiceService.mark_paid(invoice_id, self.get_actor_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class InvoiceStatusView(BaseStockView):

    def post(self, request, invoice_id):
        try:
            actor_id = self.get_actor_id(request)
            data = self.get_json_body(request)
            result = InvoiceService.update_status(invoice_id, data.get("status"), actor_id)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)
