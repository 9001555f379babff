from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter, RangeNumericFilter

from .models import User, Product


@admin.register(User)
class UserAdmin(ModelAdmin):
    list_display = ['id', 'display_name', 'email', 'role_badge', 'status_badge', 'created_at']
    list_filter = [
        'role',
        'status',
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['first_name', 'last_name', 'business_name', 'email']
    list_filter_submit = True
    list_fullwidth = True
    readonly_fields = ['uuid', 'created_at', 'updated_at']

    fieldsets = (
        (_('Identity'), {
            'fields': ('first_name', 'last_name', 'business_name', 'email', 'phone'),
            'classes': ['tab'],
        }),
        (_('Trading'), {
            'fields': ('role', 'status'),
            'classes': ['tab'],
        }),
        (_('Timestamps'), {
            'fields': ('uuid', 'created_at', 'updated_at'),
            'classes': ['tab'],
        }),
    )

    @display(description=_("Name"), ordering='business_name')
    def display_name(self, obj):
        return obj.name

    @display(description=_("Role"), label=True)
    def role_badge(self, obj):
        colors = {
            'MANUFACTURER': 'danger',
            'DISTRIBUTOR': 'warning',
            'RETAILER': 'success',
            'BUYER': 'info',
        }
        return colors.get(obj.role, 'info'), obj.get_role_display()

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.status == 'ACTIVE':
            return 'success', obj.get_status_display()
        return 'danger', obj.get_status_display()


@admin.register(Product)
class ProductAdmin(ModelAdmin):
    list_display = ['id', 'name', 'sku', 'unit', 'vat_display', 'manufacturer', 'created_at']
    list_filter = [
        'unit',
        ('vat_rate', RangeNumericFilter),
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['name', 'sku', 'description']
    list_filter_submit = True
    list_fullwidth = True
    autocomplete_fields = ['manufacturer']

    fieldsets = (
        (_('Product Information'), {
            'fields': ('name', 'sku', 'unit', 'description', 'manufacturer')
        }),
        (_('Tax'), {
            'fields': ('vat_rate',)
        }),
    )

    @display(description=_("VAT"), ordering='vat_rate')
    def vat_display(self, obj):
        return f"{obj.vat_rate}%"
