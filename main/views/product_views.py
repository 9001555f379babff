from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..services.product_service import ProductService


def _int_param(request, name, default):
    try:
        return int(request.GET.get(name, default))
    except (TypeError, ValueError):
        return default


@csrf_exempt
@api_view(["GET"])
def list_products(request):
    result = ProductService.get_all_products(
        page=_int_param(request, 'page', 1),
        per_page=_int_param(request, 'per_page', 20),
        search=request.GET.get('search'),
        manufacturer_id=request.GET.get('manufacturer_id'),
    )
    return Response({'success': True, **result})


@csrf_exempt
@api_view(["GET"])
def get_product(request, product_id):
    product = ProductService.get_product(product_id)

    if product is None:
        return Response(
            {'success': False, 'error': f'Product not found: {product_id}', 'code': 'NOT_FOUND', 'details': {}},
            status=404,
        )

    return Response({'success': True, 'product': ProductService.serialize(product)})
