"""
Permission classes for session and CSRF checks.
"""
from __future__ import annotations

from rest_framework.permissions import BasePermission, SAFE_METHODS

from clinic.exceptions import CSRFError
from clinic.services.csrf import CsrfTokenStore


def submitted_csrf_token(request):
    data = request.data if isinstance(request.data, dict) else {}
    return data.get('csrf_token') or request.META.get('HTTP_X_CSRF_TOKEN')


def csrf_store(request) -> CsrfTokenStore:
    return CsrfTokenStore(request.services.authenticator.load(request))


def verify_csrf(request, form_name: str | None = None) -> None:
    """Check the submitted token against the session or a named form token.

    Failures are logged as security events before the error propagates.
    """
    store = csrf_store(request)
    token = submitted_csrf_token(request)
    try:
        if form_name is None:
            store.check_session_token(token)
        else:
            store.validate(token, form_name)
    except CSRFError as exc:
        request.services.monitor.security(
            'csrf validation failed', severity=exc.severity, request=request,
            reason=exc.default_code, form=form_name or 'session',
        )
        raise


class HasSessionCsrfToken(BasePermission):
    """Unsafe methods must carry the session's CSRF token."""

    def has_permission(self, request, view) -> bool:
        # Unsupported verbs fall through to the 405 answer.
        if request.method in SAFE_METHODS or request.method not in view.allowed_methods:
            return True
        verify_csrf(request)
        return True


class HasActiveSession(BasePermission):
    """A live session is bound, even if its doctor row has gone away."""

    def has_permission(self, request, view) -> bool:
        return request.services.authenticator.load(request).is_authenticated()
