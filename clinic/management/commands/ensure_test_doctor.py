# clinic/management/commands/ensure_test_doctor.py
from django.core.management.base import BaseCommand

from clinic.models import Doctor

TEST_USERNAME = 'testdoctor'
TEST_PASSWORD = 'TestPass123!'


class Command(BaseCommand):
    help = "Ensure the test doctor exists with the known password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument('--username', default=TEST_USERNAME)
        parser.add_argument('--password', default=TEST_PASSWORD)
        parser.add_argument('--email', default='testdoctor@example.com')

    def handle(self, *args, **opts):
        doctor, created = Doctor.objects.get_or_create(
            username=opts['username'],
            defaults={
                'email': opts['email'],
                'first_name': 'Doctor',
                'last_name': 'de Prueba',
                'specialization': 'Medicina General',
            },
        )
        # Always reset the password so the known credentials keep working.
        doctor.set_password(opts['password'])
        doctor.save(update_fields=['password'])
        state = 'created' if created else 'updated'
        self.stdout.write(self.style.SUCCESS(f"ok: {doctor.username} ({state})"))
