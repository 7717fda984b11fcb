"""
Authentication endpoints: CSRF tokens, login, logout, registration and
the session keep-alive pair used by the front-end timeout dialog.

Login and registration run before a session exists, so they are guarded
by single-use form tokens (``GET /api/auth/csrf?form=login``).  Every
other state change uses the session-wide token handed out at login.
"""
from __future__ import annotations

from django.conf import settings
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from clinic.exceptions import ValidationError
from clinic.permissions import HasSessionCsrfToken, csrf_store, verify_csrf
from clinic.serializers.auth import LoginSerializer, RegisterSerializer

LOGIN_FORM = 'login'
REGISTER_FORM = 'register'
FORM_NAMES = (LOGIN_FORM, REGISTER_FORM)


@api_view(['GET'])
@permission_classes([AllowAny])
def csrf_token_view(request):
    """Session token by default; ``?form=<name>`` issues a fresh form token."""
    store = csrf_store(request)
    form = request.query_params.get('form')
    if form:
        if form not in FORM_NAMES:
            raise ValidationError('Formulario no válido', field='form')
        return Response({
            'success': True,
            'form': form,
            'csrf_token': store.issue(form),
            'expires_in': store.ttl,
        })
    return Response({'success': True, 'csrf_token': store.session_token()})


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    verify_csrf(request, LOGIN_FORM)
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    auth = request.services.authenticator
    doctor = auth.login(request, vd['username'], vd['password'])
    ctx = auth.load(request)
    return Response({
        'success': True,
        'message': 'Inicio de sesión exitoso',
        'user': doctor.profile(),
        'csrf_token': ctx.csrf_token,
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def logout_view(request):
    auth = request.services.authenticator
    if auth.load(request).is_authenticated():
        verify_csrf(request)
    auth.logout(request)
    return Response({
        'success': True,
        'message': 'Sesión cerrada exitosamente',
        'redirect': 'login.html',
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def register_view(request):
    verify_csrf(request, REGISTER_FORM)
    s = RegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    doctor = s.save()
    request.services.monitor.security('doctor registered', severity='low', request=request,
                                      doctor_id=doctor.id, username=doctor.username)
    return Response({
        'success': True,
        'message': 'Cuenta creada exitosamente',
        'doctor_id': doctor.id,
        'redirect': 'login.html',
    })


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def session_status(request):
    """Report the remaining idle time without counting as activity."""
    ctx = request.services.authenticator.load(request)
    remaining = ctx.time_remaining() if ctx.is_authenticated() else None
    return Response({
        'timeout': remaining is None or remaining <= settings.SESSION_WARNING_WINDOW,
        'time_remaining': remaining,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasSessionCsrfToken])
def session_extend(request):
    # Authentication already slid last_activity forward for this request.
    return Response({
        'success': True,
        'message': 'Sesión extendida exitosamente',
        'time_remaining': request.auth.time_remaining(),
    })
