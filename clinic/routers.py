"""
URL mappings for the consultorio API.

Paths carry no trailing slash; the front-end calls them verbatim.
"""
from django.urls import path

from .auth_views import (
    csrf_token_view,
    login_view,
    logout_view,
    register_view,
    session_extend,
    session_status,
)
from .views.appointments import appointments
from .views.health import healthz
from .views.patients import patient_notes, patients
from .views.prescriptions import prescriptions
from .views.user import current_user

urlpatterns = [
    path('api/auth/csrf', csrf_token_view, name='csrf_token_view'),
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/logout', logout_view, name='logout_view'),
    path('api/auth/register', register_view, name='register_view'),
    path('api/auth/session', session_status, name='session_status'),
    path('api/auth/session/extend', session_extend, name='session_extend'),

    path('api/patients', patients, name='patients'),
    path('api/patients/notes', patient_notes, name='patient_notes'),
    path('api/appointments', appointments, name='appointments'),
    path('api/prescriptions', prescriptions, name='prescriptions'),
    path('api/user', current_user, name='current_user'),

    path('healthz', healthz, name='healthz'),
]
