from typing import Dict, Any, Optional
from django.db.models import Q

from main.models import Product


class ProductService:
    """Read-only catalog lookups. Product identity never changes after creation."""

    @staticmethod
    def get_product(product_id) -> Optional[Product]:
        try:
            return Product.objects.get(id=product_id)
        except (Product.DoesNotExist, ValueError, TypeError):
            return None

    @staticmethod
    def get_all_products(page=1, per_page=20, search=None, manufacturer_id=None):
        queryset = Product.objects.all()

        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(sku__icontains=search))
        if manufacturer_id:
            queryset = queryset.filter(manufacturer_id=manufacturer_id)

        page = max(1, page)
        per_page = min(max(1, per_page), 100)
        total = queryset.count()
        offset = (page - 1) * per_page
        products = queryset.order_by('name')[offset:offset + per_page]

        return {
            'products': [ProductService.serialize(p) for p in products],
            'pagination': {
                'page': page,
                'per_page': per_page,
                'total_items': total,
                'total_pages': (total + per_page - 1) // per_page,
            }
        }

    @staticmethod
    def serialize(product: Product) -> Dict[str, Any]:
        return {
            'id': product.id,
            'name': product.name,
            'sku': product.sku,
            'unit': product.unit,
            'vat_rate': str(product.vat_rate),
            'manufacturer_id': product.manufacturer_id,
            'description': product.description,
        }
