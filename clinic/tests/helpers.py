from rest_framework.test import APIClient

from clinic.models import Doctor

PASSWORD = 'TestPass123!'
SESSION_COOKIE = 'consultorio_sid'


def make_doctor(username='testdoctor', password=PASSWORD, **extra) -> Doctor:
    fields = {
        'email': f'{username}@example.com',
        'first_name': 'Ana',
        'last_name': 'García',
        'specialization': 'Cardiología',
    }
    fields.update(extra)
    doctor = Doctor(username=username, **fields)
    doctor.set_password(password)
    doctor.save()
    return doctor


def form_token(client, form):
    r = client.get('/api/auth/csrf', {'form': form})
    assert r.status_code == 200
    return r.data['csrf_token']


def login(client, username, password=PASSWORD, **extra):
    token = form_token(client, 'login')
    return client.post(
        '/api/auth/login',
        {'csrf_token': token, 'username': username, 'password': password},
        format='json', **extra,
    )


def logged_in_client(doctor, password=PASSWORD) -> APIClient:
    """APIClient with a live session; the session CSRF token is on ``client.csrf``."""
    client = APIClient()
    r = login(client, doctor.username, password)
    assert r.status_code == 200, r.data
    client.csrf = r.data['csrf_token']
    return client


def session_key(client):
    cookie = client.cookies.get(SESSION_COOKIE)
    return cookie.value if cookie else None
