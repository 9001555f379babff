from django.urls import path
from . import views

app_name = "stock"

urlpatterns = [
    path("orders/", views.OrderListView.as_view(), name="order-list"),
    path("orders/<int:order_id>/", views.OrderDetailView.as_view(), name="order-detail"),
    path("orders/<int:order_id>/confirm/", views.OrderConfirmView.as_view(), name="order-confirm"),
    path("orders/<int:order_id>/reject/", views.OrderRejectView.as_view(), name="order-reject"),
    path("orders/<int:order_id>/cancel/", views.OrderCancelView.as_view(), name="order-cancel"),

    path("stock/", views.StockBalanceListView.as_view(), name="balance-list"),
    path("stock/adjust/", views.StockAdjustView.as_view(), name="balance-adjust"),
    path("stock/availability/", views.StockAvailabilityView.as_view(), name="availability"),

    path("direct-sale/", views.DirectSaleView.as_view(), name="direct-sale"),
    path("sales/", views.SaleView.as_view(), name="sale"),

    path("transactions/", views.TransactionListView.as_view(), name="transaction-list"),
    path("transactions/stats/", views.TransactionStatsView.as_view(), name="transaction-stats"),
    path("transactions/<int:transaction_id>/", views.TransactionDetailView.as_view(), name="transaction-detail"),
    path("transactions/<int:transaction_id>/cancel/", views.TransactionCancelView.as_view(), name="transaction-cancel"),

    path("invoices/", views.InvoiceListView.as_view(), name="invoice-list"),
    path("invoices/<int:invoice_id>/", views.InvoiceDetailView.as_view(), name="invoice-detail"),
    path("invoices/<int:invoice_id>/mark-paid/", views.InvoiceMarkPaidView.as_view(), name="invoice-mark-paid"),
    path("invoices/<int:invoice_id>/status/", views.InvoiceStatusView.as_view(), name="invoice-status"),
]
