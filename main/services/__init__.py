from main.services.user_service import UserService
from main.services.product_service import ProductService

__all__ = [
    "UserService",
    "ProductService",
]
