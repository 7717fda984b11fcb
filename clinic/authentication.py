"""
DRF authentication backed by the idle-timeout session.

Kept apart from the views so REST framework can import it while loading
settings without pulling in the view modules.
"""
from __future__ import annotations

from rest_framework import authentication


def get_services(request):
    return request.services


class SessionIdleAuthentication(authentication.BaseAuthentication):
    """Resolve ``request.user`` to the doctor bound to the session.

    On success ``request.auth`` is the request's ``SessionContext``.
    Anonymous, expired and hijacked sessions authenticate as nobody.
    """

    def authenticate(self, request):
        ctx = get_services(request).authenticator.resume(request)
        if ctx is None:
            return None
        doctor = ctx.current_user()
        if doctor is None:
            return None
        return doctor, ctx

    def authenticate_header(self, request):
        # A value here turns NotAuthenticated into 401 instead of 403.
        return 'Session realm="api"'
