from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from clinic.exceptions import AuthzError
from clinic.permissions import HasActiveSession

PROFILE_TTL = 300


def profile_cache_key(doctor_id) -> str:
    return f'user_profile:{doctor_id}'


@api_view(['GET'])
@permission_classes([HasActiveSession])
def current_user(request):
    """Profile of the doctor behind the session, cached for five minutes."""
    doctor = request.user
    if doctor is None:
        raise AuthzError('Usuario no encontrado')
    profile = request.services.cache.remember(profile_cache_key(doctor.id), doctor.profile, PROFILE_TTL)
    return Response({'success': True, 'user': profile})
