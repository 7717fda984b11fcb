"""
Integration tests for the consultorio JSON API.

These tests exercise the patient, appointment, prescription and user
endpoints end to end: ownership isolation between doctors, validation
messages, the patient delete cascade and the error envelope.  They use
Django REST Framework's APIClient within the APITestCase base class.

To run the tests:

```
pytest -q clinic/tests
```
"""
from datetime import date

from django.db import DatabaseError
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from clinic.models import Appointment, Patient, PatientNote, Prescription
from clinic.services import patients as patient_service
from clinic.tests.helpers import logged_in_client, make_doctor


class _ExplodingManager:
    def filter(self, **kwargs):
        return self

    def delete(self):
        raise DatabaseError('disk I/O error')


class _ExplodingModel:
    objects = _ExplodingManager()


class ConsultorioAPITests(APITestCase):
    def setUp(self) -> None:
        """Two doctors, each with one patient and a few dependent rows."""
        self.doctor_a = make_doctor('doctora')
        self.doctor_b = make_doctor('doctorb', first_name='Luis')

        self.patient_a = Patient.objects.create(
            doctor=self.doctor_a, nombre='María López', email='maria@example.com', telefono='555-0101',
        )
        self.patient_b = Patient.objects.create(
            doctor=self.doctor_b, nombre='Jorge Ruiz', email='jorge@example.com', telefono='555-0202',
        )
        PatientNote.objects.create(patient=self.patient_a, texto='Alergia a penicilina', fecha=date(2025, 1, 10))
        self.appt_a = Appointment.objects.create(
            patient=self.patient_a, doctor=self.doctor_a,
            fecha=date(2025, 3, 1), hora='09:30', motivo='Control',
        )
        self.rx_a = Prescription.objects.create(
            patient=self.patient_a, doctor=self.doctor_a,
            medicamento='Amoxicilina', dosis='500mg', frecuencia='8h', duracion=7,
        )
        self.appt_b = Appointment.objects.create(
            patient=self.patient_b, doctor=self.doctor_b,
            fecha=date(2025, 3, 2), hora='10:00', motivo='Revisión',
        )

        self.client_a = logged_in_client(self.doctor_a)
        self.client_b = logged_in_client(self.doctor_b)

    def send(self, client: APIClient, method: str, path: str, data=None):
        body = {'csrf_token': client.csrf, **(data or {})}
        return getattr(client, method)(path, body, format='json')

    # -- authentication -----------------------------------------------------

    def test_anonymous_requests_get_401(self):
        anonymous = APIClient()
        for path in ('/api/patients', '/api/appointments', '/api/prescriptions', '/api/user'):
            response = anonymous.get(path)
            self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
            self.assertEqual(response.data, {'success': False, 'error': 'No autorizado'})

    def test_unsupported_verb_is_405(self):
        response = self.client_a.patch('/api/patients', {'csrf_token': self.client_a.csrf}, format='json')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(response.data['error'], 'Método no permitido')
        response = self.client_a.post('/api/user', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    # -- patients -----------------------------------------------------------

    def test_patient_list_is_scoped_to_doctor(self):
        response = self.client_a.get('/api/patients')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [p['id'] for p in response.data['patients']]
        self.assertEqual(ids, [self.patient_a.id])
        self.assertEqual(
            response.data['patients'][0]['notas'],
            [{'texto': 'Alergia a penicilina', 'fecha': '2025-01-10'}],
        )

    def test_patient_round_trip(self):
        payload = {'nombre': 'Lucía Gómez', 'email': 'lucia@example.com', 'telefono': '555-0303'}
        response = self.send(self.client_a, 'post', '/api/patients', payload)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Paciente creado exitosamente')
        new_id = response.data['patient_id']

        listed = self.client_a.get('/api/patients').data['patients']
        # Newest first.
        self.assertEqual(listed[0], {'id': new_id, 'notas': [], **payload})

    def test_patient_fields_are_cleaned_and_truncated(self):
        payload = {'nombre': '  <b>' + 'x' * 300 + '</b> ', 'email': 'ok@example.com'}
        response = self.send(self.client_a, 'post', '/api/patients', payload)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        saved = Patient.objects.get(id=response.data['patient_id'])
        self.assertEqual(saved.nombre, 'x' * 255)
        self.assertEqual(saved.telefono, '')

    def test_markup_is_stripped_and_entities_escaped(self):
        # Stored text is HTML-safe: tags are dropped, bare ampersands escaped.
        payload = {'nombre': 'Pérez & Hijos <i>SA</i>', 'email': 'ph@example.com'}
        response = self.send(self.client_a, 'post', '/api/patients', payload)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        listed = self.client_a.get('/api/patients').data['patients']
        self.assertEqual(listed[0]['nombre'], 'Pérez &amp; Hijos SA')

    def test_patient_validation_messages(self):
        response = self.send(self.client_a, 'post', '/api/patients', {'nombre': '', 'email': 'a@b.com'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'success': False, 'error': 'Nombre y email son obligatorios', 'field': 'nombre'})

        response = self.send(self.client_a, 'post', '/api/patients', {'nombre': 'Ana', 'email': 'no-email'})
        self.assertEqual(response.data['error'], 'Email inválido')

    def test_put_is_idempotent(self):
        payload = {'id': self.patient_a.id, 'nombre': 'María L.', 'email': 'maria@example.com', 'telefono': '555'}
        first = self.send(self.client_a, 'put', '/api/patients', payload)
        second = self.send(self.client_a, 'put', '/api/patients', payload)
        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second.data['message'], 'Paciente actualizado exitosamente')
        self.patient_a.refresh_from_db()
        self.assertEqual((self.patient_a.nombre, self.patient_a.telefono), ('María L.', '555'))

    def test_put_on_foreign_patient_changes_nothing(self):
        payload = {'id': self.patient_a.id, 'nombre': 'Hacked', 'email': 'h@example.com'}
        response = self.send(self.client_b, 'put', '/api/patients', payload)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {'success': False, 'error': 'Paciente no encontrado'})
        self.patient_a.refresh_from_db()
        self.assertEqual(self.patient_a.nombre, 'María López')

    def test_foreign_and_missing_rows_look_the_same(self):
        foreign = self.send(self.client_b, 'delete', '/api/patients', {'id': self.patient_a.id})
        missing = self.send(self.client_b, 'delete', '/api/patients', {'id': 999999})
        self.assertEqual(foreign.status_code, missing.status_code)
        self.assertEqual(foreign.data, missing.data)
        self.assertTrue(Patient.objects.filter(id=self.patient_a.id).exists())

    def test_delete_patient_cascades(self):
        response = self.send(self.client_a, 'delete', '/api/patients', {'id': self.patient_a.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Paciente eliminado exitosamente')

        self.assertEqual(self.client_a.get('/api/patients').data['patients'], [])
        self.assertEqual(self.client_a.get('/api/appointments').data['appointments'], [])
        self.assertEqual(self.client_a.get('/api/prescriptions').data['prescriptions'], [])
        self.assertFalse(PatientNote.objects.filter(patient_id=self.patient_a.id).exists())
        # Other doctor untouched.
        self.assertEqual(len(self.client_b.get('/api/appointments').data['appointments']), 1)

    def test_delete_cascade_rolls_back_on_failure(self):
        original = patient_service.DEPENDENT_MODELS
        patient_service.DEPENDENT_MODELS = (PatientNote, Appointment, _ExplodingModel)
        try:
            response = self.send(self.client_a, 'delete', '/api/patients', {'id': self.patient_a.id})
        finally:
            patient_service.DEPENDENT_MODELS = original

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'success': False, 'error': 'Error interno del servidor'})
        self.assertTrue(Patient.objects.filter(id=self.patient_a.id).exists())
        self.assertEqual(PatientNote.objects.filter(patient=self.patient_a).count(), 1)
        self.assertEqual(Appointment.objects.filter(patient=self.patient_a).count(), 1)
        self.assertEqual(Prescription.objects.filter(patient=self.patient_a).count(), 1)

    def test_delete_requires_valid_id(self):
        response = self.send(self.client_a, 'delete', '/api/patients', {'id': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'ID de paciente inválido')

        response = self.send(self.client_a, 'delete', '/api/patients', {'id': 2 ** 64})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'id')

    def test_add_note(self):
        response = self.send(self.client_a, 'post', '/api/patients/notes',
                             {'patient_id': self.patient_a.id, 'texto': 'Presión arterial normal'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        notas = self.client_a.get('/api/patients').data['patients'][0]['notas']
        self.assertEqual(notas[-1], {'texto': 'Presión arterial normal', 'fecha': timezone.localdate().isoformat()})

        response = self.send(self.client_b, 'post', '/api/patients/notes',
                             {'patient_id': self.patient_a.id, 'texto': 'intruso'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_internal_errors_stay_generic(self):
        original = patient_service.list_patients

        def broken(doctor):
            raise RuntimeError('connection string mysql://root:hunter2@db')

        patient_service.list_patients = broken
        try:
            response = self.client_a.get('/api/patients')
        finally:
            patient_service.list_patients = original
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'success': False, 'error': 'Error interno del servidor'})
        self.assertNotIn(b'hunter2', response.content)

    # -- appointments -------------------------------------------------------

    def test_appointment_list_shape_and_order(self):
        Appointment.objects.create(patient=self.patient_a, doctor=self.doctor_a,
                                   fecha=date(2025, 3, 1), hora='08:00', motivo='Ayunas')
        Appointment.objects.create(patient=self.patient_a, doctor=self.doctor_a,
                                   fecha=date(2025, 4, 1), hora='12:00', motivo='Resultados')
        rows = self.client_a.get('/api/appointments').data['appointments']
        self.assertEqual([(r['fecha'], r['hora']) for r in rows],
                         [('2025-04-01', '12:00'), ('2025-03-01', '08:00'), ('2025-03-01', '09:30')])
        self.assertEqual(rows[2], {
            'id': self.appt_a.id, 'fecha': '2025-03-01', 'hora': '09:30', 'motivo': 'Control',
            'paciente_id': self.patient_a.id, 'paciente_nombre': 'María López',
        })

    def test_create_appointment(self):
        response = self.send(self.client_a, 'post', '/api/appointments', {
            'patient_id': self.patient_a.id, 'fecha': '2025-05-20', 'hora': '16:45', 'motivo': 'Chequeo',
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Cita creada exitosamente')
        appt = Appointment.objects.get(id=response.data['appointment_id'])
        self.assertEqual(appt.doctor_id, self.doctor_a.id)

    def test_appointment_date_and_time_formats(self):
        base = {'patient_id': self.patient_a.id, 'fecha': '2025-05-20', 'hora': '16:45', 'motivo': 'Chequeo'}
        for field, value, message in (
            ('fecha', '2025-13-01', 'Formato de fecha inválido'),
            ('fecha', '2025-02-30', 'Formato de fecha inválido'),
            ('fecha', '20/05/2025', 'Formato de fecha inválido'),
            ('hora', '4:45', 'Formato de hora inválido'),
            ('hora', '25:00', 'Formato de hora inválido'),
            ('motivo', '', 'Todos los campos son obligatorios'),
        ):
            response = self.send(self.client_a, 'post', '/api/appointments', {**base, field: value})
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, (field, value))
            self.assertEqual(response.data['error'], message)
            self.assertEqual(response.data['field'], field)

    def test_appointment_for_foreign_patient_is_404(self):
        response = self.send(self.client_a, 'post', '/api/appointments', {
            'patient_id': self.patient_b.id, 'fecha': '2025-05-20', 'hora': '16:45', 'motivo': 'Chequeo',
        })
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Paciente no encontrado')

    def test_update_and_delete_appointment(self):
        payload = {'id': self.appt_a.id, 'patient_id': self.patient_a.id,
                   'fecha': '2025-03-05', 'hora': '11:15', 'motivo': 'Reprogramada'}
        self.assertEqual(self.send(self.client_a, 'put', '/api/appointments', payload).status_code, 200)
        self.appt_a.refresh_from_db()
        self.assertEqual(self.appt_a.motivo, 'Reprogramada')

        # Doctor B may not move A's appointment onto B's own patient either.
        foreign = self.send(self.client_b, 'put', '/api/appointments', {**payload, 'patient_id': self.patient_b.id})
        self.assertEqual(foreign.status_code, status.HTTP_404_NOT_FOUND)

        self.assertEqual(self.send(self.client_b, 'delete', '/api/appointments', {'id': self.appt_a.id}).status_code, 404)
        self.assertEqual(self.send(self.client_a, 'delete', '/api/appointments', {'id': self.appt_a.id}).status_code, 200)
        self.assertFalse(Appointment.objects.filter(id=self.appt_a.id).exists())

    # -- prescriptions ------------------------------------------------------

    def test_prescription_crud(self):
        payload = {'patient_id': self.patient_a.id, 'medicamento': 'Ibuprofeno',
                   'dosis': '400mg', 'frecuencia': '12h', 'duracion': 5}
        response = self.send(self.client_a, 'post', '/api/prescriptions', payload)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Receta creada exitosamente')
        rx_id = response.data['prescription_id']

        rows = self.client_a.get('/api/prescriptions').data['prescriptions']
        self.assertEqual(rows[0]['id'], rx_id)
        self.assertEqual(rows[0]['paciente_nombre'], 'María López')
        self.assertEqual(rows[0]['duracion'], 5)

        update = self.send(self.client_a, 'put', '/api/prescriptions', {**payload, 'id': rx_id, 'duracion': 10})
        self.assertEqual(update.status_code, status.HTTP_200_OK)
        self.assertEqual(Prescription.objects.get(id=rx_id).duracion, 10)

        self.assertEqual(self.send(self.client_b, 'delete', '/api/prescriptions', {'id': rx_id}).status_code, 404)
        self.assertEqual(self.send(self.client_a, 'delete', '/api/prescriptions', {'id': rx_id}).status_code, 200)

    def test_prescription_duration_must_be_positive(self):
        payload = {'patient_id': self.patient_a.id, 'medicamento': 'Ibuprofeno',
                   'dosis': '400mg', 'frecuencia': '12h'}
        for value in (0, -3, 'siete', 2.5, 2 ** 31, 2 ** 63):
            response = self.send(self.client_a, 'post', '/api/prescriptions', {**payload, 'duracion': value})
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, value)
            self.assertEqual(response.data['field'], 'duracion')

        response = self.send(self.client_a, 'post', '/api/prescriptions', payload)
        self.assertEqual(response.data['error'], 'Todos los campos son obligatorios')

    # -- user ---------------------------------------------------------------

    def test_user_profile(self):
        response = self.client_a.get('/api/user')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user'], {
            'id': self.doctor_a.id, 'nombre': 'Ana', 'apellido': 'García',
            'especialidad': 'Cardiología', 'email': 'doctora@example.com',
        })

    def test_user_profile_is_cached(self):
        self.client_a.get('/api/user')
        type(self.doctor_a).objects.filter(id=self.doctor_a.id).update(first_name='Renamed')
        self.assertEqual(self.client_a.get('/api/user').data['user']['nombre'], 'Ana')

    def test_user_missing_row_is_404(self):
        type(self.doctor_a).objects.filter(id=self.doctor_a.id).delete()
        response = self.client_a.get('/api/user')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Usuario no encontrado')


class HealthTests(APITestCase):
    def test_healthz(self):
        response = self.client.get('/healthz')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'ok': True, 'db': True, 'cache': True})
