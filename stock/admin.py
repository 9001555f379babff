from django.contrib import admin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _
from django.urls import reverse
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter, RangeNumericFilter

from .models import (
    StockBalance, Order, OrderItem, TradeTransaction, TransactionItem,
    Invoice, InvoiceItem,
)


LINE_FIELDS = (
    'product_name', 'product_sku', 'quantity', 'unit_price', 'vat_rate',
    'line_subtotal', 'line_vat', 'line_total',
)


class ReadOnlyLineInline(TabularInline):
    extra = 0
    fields = LINE_FIELDS
    readonly_fields = LINE_FIELDS
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class OrderItemInline(ReadOnlyLineInline):
    model = OrderItem


class TransactionItemInline(ReadOnlyLineInline):
    model = TransactionItem


class InvoiceItemInline(ReadOnlyLineInline):
    model = InvoiceItem


@admin.register(StockBalance)
class StockBalanceAdmin(ModelAdmin):
    """Balances change only through the ledger service, so the admin is read-only."""

    list_display = ['id', 'owner_link', 'product_name', 'product_sku', 'bucket_badge',
                    'quantity', 'unit_price', 'version', 'updated_at']
    list_filter = [
        'bucket',
        ('quantity', RangeNumericFilter),
        ('updated_at', RangeDateTimeFilter),
    ]
    search_fields = ['product_name', 'product_sku', 'owner__business_name', 'owner__email']
    list_filter_submit = True
    list_fullwidth = True

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    @display(description=_("Owner"))
    def owner_link(self, obj):
        url = reverse('admin:main_user_change', args=[obj.owner_id])
        return format_html('<a href="{}">{}</a>', url, obj.owner.name)

    @display(description=_("Bucket"), label=True)
    def bucket_badge(self, obj):
        if obj.bucket == StockBalance.Bucket.RAW_MATERIAL:
            return 'warning', obj.get_bucket_display()
        return 'info', obj.get_bucket_display()


@admin.register(Order)
class OrderAdmin(ModelAdmin):
    list_display = ['order_number', 'seller_name', 'buyer_name', 'status_badge',
                    'total_display', 'created_at']
    list_filter = [
        'status',
        ('created_at', RangeDateTimeFilter),
        ('total_amount', RangeNumericFilter),
    ]
    search_fields = ['order_number', 'seller_name', 'buyer_name']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [OrderItemInline]
    readonly_fields = [
        'order_number', 'seller', 'seller_name', 'seller_role', 'buyer', 'buyer_name', 'buyer_role',
        'subtotal', 'total_vat', 'total_amount', 'status', 'transaction', 'invoice',
        'rejection_reason', 'buyer_notes', 'seller_notes',
        'created_at', 'updated_at', 'confirmed_at', 'rejected_at', 'cancelled_at', 'reversed_at',
    ]

    fieldsets = (
        (_('Order Information'), {
            'fields': ('order_number', 'status', 'seller', 'seller_name', 'seller_role',
                       'buyer', 'buyer_name', 'buyer_role')
        }),
        (_('Financial'), {
            'fields': ('subtotal', 'total_vat', 'total_amount', 'transaction', 'invoice')
        }),
        (_('Notes'), {
            'fields': ('buyer_notes', 'seller_notes', 'rejection_reason')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at', 'confirmed_at', 'rejected_at', 'cancelled_at', 'reversed_at')
        }),
    )

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            'PENDING': 'warning',
            'CONFIRMED': 'success',
            'REJECTED': 'danger',
            'CANCELLED': 'info',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()

    @display(description=_("Total"), ordering='total_amount')
    def total_display(self, obj):
        return f"{obj.total_amount:.2f}"


@admin.register(TradeTransaction)
class TradeTransactionAdmin(ModelAdmin):
    list_display = ['id', 'seller_name', 'buyer_name', 'buyer_role', 'type', 'status_badge',
                    'walk_in', 'total_amount', 'timestamp']
    list_filter = [
        'type',
        'status',
        'is_walk_in',
        ('timestamp', RangeDateTimeFilter),
    ]
    search_fields = ['seller_name', 'buyer_name', 'customer_phone']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [TransactionItemInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.status == TradeTransaction.Status.COMPLETED:
            return 'success', obj.get_status_display()
        return 'danger', obj.get_status_display()

    @display(description=_("Walk-in"), boolean=True)
    def walk_in(self, obj):
        return obj.is_walk_in


@admin.register(Invoice)
class InvoiceAdmin(ModelAdmin):
    list_display = ['invoice_number', 'seller_name', 'buyer_name', 'status_badge',
                    'payment_badge', 'total_amount', 'due_date', 'generated_at']
    list_filter = [
        'status',
        'payment_status',
        'is_walk_in',
        ('due_date', RangeDateTimeFilter),
    ]
    search_fields = ['invoice_number', 'seller_name', 'buyer_name']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [InvoiceItemInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            'GENERATED': 'info',
            'SENT': 'warning',
            'PAID': 'success',
            'CANCELLED': 'danger',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()

    @display(description=_("Payment"), label=True)
    def payment_badge(self, obj):
        if obj.payment_status == Invoice.PaymentStatus.PAID:
            return 'success', obj.get_payment_status_display()
        return 'warning', obj.get_payment_status_display()
