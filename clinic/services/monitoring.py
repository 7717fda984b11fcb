"""
Structured logging by category: error, security, performance and access.

The ``Monitor`` is built once per process and handed to each request
through ``request.services``.  It never writes files itself; records go
to the ``clinic.*`` loggers configured in ``settings.LOGGING``.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from django.conf import settings

SEVERITY_LEVELS = {
    'low': logging.INFO,
    'medium': logging.WARNING,
    'high': logging.ERROR,
    'critical': logging.CRITICAL,
}


def client_ip(request) -> Optional[str]:
    if request is None:
        return None
    return request.META.get('REMOTE_ADDR')


def request_user_id(request) -> Optional[int]:
    """Id of the user already attached to ``request``.

    Reads the instance dict only: on a DRF ``Request`` the ``user`` property
    runs authentication, and these helpers are called from inside it.
    """
    attrs = vars(request)
    user = attrs.get('_user', attrs.get('user'))
    return getattr(user, 'id', None)


def _request_fields(request) -> dict[str, Any]:
    if request is None:
        return {}
    return {
        'user_id': request_user_id(request),
        'ip_address': client_ip(request),
        'user_agent': request.META.get('HTTP_USER_AGENT'),
    }


class Monitor:

    def __init__(self, slow_request_seconds: float | None = None):
        self.slow_request_seconds = (
            slow_request_seconds if slow_request_seconds is not None else settings.SLOW_REQUEST_SECONDS
        )
        self.security_log = logging.getLogger('clinic.security')
        self.access_log = logging.getLogger('clinic.access')
        self.performance_log = logging.getLogger('clinic.performance')
        self.error_log = logging.getLogger('clinic.error')

    def security(self, event: str, *, severity: str = 'medium', request=None, **details) -> dict:
        """Log a security event; high and critical events double as alerts."""
        entry = {
            'event': event,
            'severity': severity,
            'details': details,
            **_request_fields(request),
        }
        self.security_log.log(SEVERITY_LEVELS.get(severity, logging.WARNING), event, extra=entry)
        if severity in ('high', 'critical'):
            self.error_log.warning('security alert: %s', event, extra={'alert': 'security', **entry})
        return entry

    def access(self, request, status_code: int) -> dict:
        entry = {
            'endpoint': request.path,
            'method': request.method,
            'response_code': status_code,
            **_request_fields(request),
        }
        self.access_log.info('%s %s %s', request.method, request.path, status_code, extra=entry)
        return entry

    def performance(self, request, elapsed: float, db_queries: int = 0) -> dict:
        entry = {
            'endpoint': request.path,
            'execution_time': round(elapsed, 4),
            'db_queries': db_queries,
            **_request_fields(request),
        }
        if elapsed > self.slow_request_seconds:
            self.performance_log.warning('slow request %s', request.path, extra=entry)
        else:
            self.performance_log.info('request timing %s', request.path, extra=entry)
        return entry

    def error(self, message: str, *, request=None, exc: BaseException | None = None, **context) -> None:
        self.error_log.error(
            message,
            exc_info=exc,
            extra={'context': context, **_request_fields(request)},
        )
