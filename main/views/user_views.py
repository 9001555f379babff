from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..services.user_service import UserService


@csrf_exempt
@api_view(["GET"])
def get_user(request, user_id):
    profile = UserService.get_user_profile(user_id)

    if profile is None:
        return Response(
            {'success': False, 'error': f'User not found: {user_id}', 'code': 'NOT_FOUND', 'details': {}},
            status=404,
        )

    return Response({'success': True, 'user': profile})
