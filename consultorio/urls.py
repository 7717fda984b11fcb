"""
URL configuration for the consultorio backend project.

The `urlpatterns` list routes URLs to views.  The JSON API lives in the
clinic app; OpenAPI documentation is exposed at ``/swagger/`` and
``/redoc/`` and Prometheus metrics at ``/metrics``.
"""
from django.urls import path, include

from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

# API metadata for Swagger/OpenAPI documentation
api_info = openapi.Info(
    title="Consultorio API",
    default_version='v1',
    description="Doctor authentication and patient, appointment and prescription management.",
)

schema_view = get_schema_view(
    api_info,
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('', include('clinic.routers')),
    path('', include('django_prometheus.urls')),
    # Swagger and ReDoc
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
]
