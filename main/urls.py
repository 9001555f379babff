from django.urls import path
from main.views import product_views, user_views


app_name = 'main'


urlpatterns = [
    path('products/', product_views.list_products, name='product-list'),
    path('products/<int:product_id>/', product_views.get_product, name='product-detail'),

    path('users/<int:user_id>/', user_views.get_user, name='user-detail'),
]
