"""
Error taxonomy and the unified API exception handler.

Every failure leaves the API as ``{"success": false, "error": message}``;
validation failures also name the offending ``field``.  Internal errors
are logged with request context and never leak their text.
"""
from __future__ import annotations

import logging

from django.db import DatabaseError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from clinic.services.monitoring import request_user_id

logger = logging.getLogger('clinic.error')

GENERIC_ERROR = 'Error interno del servidor'


class ValidationError(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Datos inválidos'
    default_code = 'validation_error'

    def __init__(self, detail=None, field: str | None = None):
        super().__init__(detail)
        self.field = field


class AuthError(exceptions.NotAuthenticated):
    default_detail = 'No autorizado'
    default_code = 'not_authenticated'


class InvalidCredentials(exceptions.AuthenticationFailed):
    default_detail = 'Usuario o contraseña incorrectos'
    default_code = 'invalid_credentials'


class AuthzError(exceptions.NotFound):
    """Ownership mismatch.  Reported as 404 so existence is never confirmed."""
    default_detail = 'Recurso no encontrado'
    default_code = 'not_found'


class CSRFError(exceptions.PermissionDenied):
    default_detail = 'Token CSRF inválido'
    default_code = 'csrf_error'
    severity = 'high'


class TokenNotFound(CSRFError):
    default_code = 'csrf_not_found'


class TokenExpired(CSRFError):
    default_code = 'csrf_expired'
    severity = 'medium'


class TokenMismatch(CSRFError):
    default_code = 'csrf_mismatch'


class RateLimitError(exceptions.APIException):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = 'Demasiados intentos fallidos. Intente nuevamente en 15 minutos'
    default_code = 'rate_limited'


class PersistenceError(exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = GENERIC_ERROR
    default_code = 'persistence_error'


def _first_error(detail) -> tuple[str | None, str]:
    """Collapse a DRF error structure to its first ``(field, message)``."""
    if isinstance(detail, dict):
        for key, value in detail.items():
            field, message = _first_error(value)
            return (field or (None if key == 'non_field_errors' else key)), message
    if isinstance(detail, (list, tuple)) and detail:
        return _first_error(detail[0])
    return None, str(detail)


def _request_context(context) -> dict:
    request = context.get('request')
    view = context.get('view')
    if request is None:
        return {'view': view.__class__.__name__ if view else None}
    return {
        'method': request.method,
        'path': request.path,
        'user_id': request_user_id(request),
        'ip': request.META.get('REMOTE_ADDR'),
    }


def api_exception_handler(exc, context):
    if isinstance(exc, DatabaseError):
        exc = PersistenceError()
        logger.exception('database failure', extra={'context': _request_context(context)})
    elif isinstance(exc, PersistenceError):
        logger.error('persistence failure', extra={'context': _request_context(context)})

    if isinstance(exc, Http404):
        exc = AuthzError()

    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.error('unhandled exception', exc_info=exc, extra={'context': _request_context(context)})
        return Response({'success': False, 'error': GENERIC_ERROR}, status=500)

    payload: dict[str, object] = {'success': False}
    if isinstance(exc, exceptions.MethodNotAllowed):
        payload['error'] = 'Método no permitido'
    elif isinstance(exc, exceptions.NotAuthenticated):
        payload['error'] = AuthError.default_detail
    elif isinstance(exc, exceptions.ValidationError):
        field, message = _first_error(exc.detail)
        payload['error'] = message
        if field:
            payload['field'] = field
    elif isinstance(exc, ValidationError):
        payload['error'] = str(exc.detail)
        if exc.field:
            payload['field'] = exc.field
    elif isinstance(exc, exceptions.ParseError):
        payload['error'] = 'JSON inválido'
    elif resp.status_code >= 500:
        payload['error'] = GENERIC_ERROR
    else:
        payload['error'] = str(exc.detail) if isinstance(exc, exceptions.APIException) else GENERIC_ERROR
    return Response(payload, status=resp.status_code, headers=_auth_headers(resp))


def _auth_headers(resp) -> dict:
    headers = {}
    for name in ('WWW-Authenticate', 'Retry-After', 'Allow'):
        if resp.has_header(name):
            headers[name] = resp[name]
    return headers
