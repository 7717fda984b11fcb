import pytest
from django.core.cache import cache

from clinic.models import Patient
from clinic.tests.helpers import logged_in_client, make_doctor


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def doctor(db):
    return make_doctor()


@pytest.fixture
def other_doctor(db):
    return make_doctor('otrodoctor', first_name='Luis', last_name='Pérez', specialization='Pediatría')


@pytest.fixture
def doctor_client(doctor):
    return logged_in_client(doctor)


@pytest.fixture
def other_client(other_doctor):
    return logged_in_client(other_doctor)


@pytest.fixture
def patient(doctor):
    return Patient.objects.create(doctor=doctor, nombre='María López', email='maria@example.com', telefono='555-0101')
