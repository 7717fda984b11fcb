"""
Request middleware: service injection, access/timing logs and the
response hardening headers.
"""
from __future__ import annotations

import time

from django.apps import apps
from django.conf import settings
from django.db import connection


class ServicesMiddleware:
    """Attach the process-wide ``Services`` bundle as ``request.services``."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.services = apps.get_app_config('clinic').services
        return self.get_response(request)


class RequestMonitoringMiddleware:
    """Log one access line and one timing line per request."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        counter = _QueryCounter()
        started = time.perf_counter()
        with connection.execute_wrapper(counter):
            response = self.get_response(request)
        elapsed = time.perf_counter() - started

        monitor = request.services.monitor
        monitor.access(request, response.status_code)
        monitor.performance(request, elapsed, db_queries=counter.count)
        return response


class _QueryCounter:

    def __init__(self):
        self.count = 0

    def __call__(self, execute, sql, params, many, context):
        self.count += 1
        return execute(sql, params, many, context)


class SecurityHeadersMiddleware:
    """Headers Django's SecurityMiddleware does not set by itself."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)
        response.setdefault('Content-Security-Policy', settings.CONTENT_SECURITY_POLICY)
        response.setdefault('X-Permitted-Cross-Domain-Policies', 'none')
        response.setdefault('Cross-Origin-Resource-Policy', 'same-origin')
        response.setdefault('Permissions-Policy', 'geolocation=(), camera=(), microphone=()')
        if request.path.startswith('/api/'):
            response.setdefault('Cache-Control', 'no-store')
        return response
