from typing import Dict, Any, Optional
from main.models import User


class UserService:
    """Read-only identity lookups consumed by the stock ledger."""

    @staticmethod
    def get_user(user_id) -> Optional[User]:
        try:
            return User.objects.get(id=user_id)
        except (User.DoesNotExist, ValueError, TypeError):
            return None

    @staticmethod
    def get_user_role(user_id) -> Optional[str]:
        try:
            return User.objects.filter(id=user_id).values_list('role', flat=True).first()
        except (ValueError, TypeError):
            return None

    @staticmethod
    def get_user_profile(user_id) -> Optional[Dict[str, Any]]:
        user = UserService.get_user(user_id)
        if not user:
            return None
        return UserService.serialize(user)

    @staticmethod
    def serialize(user: User) -> Dict[str, Any]:
        return {
            'id': user.id,
            'name': user.name,
            'email': user.email,
            'role': user.role,
            'status': user.status,
        }
