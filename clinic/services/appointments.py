from __future__ import annotations

from clinic.exceptions import AuthzError
from clinic.models import Appointment, Doctor
from clinic.services.patients import owned_patient


def appointment_as_dict(appt: Appointment) -> dict:
    return {
        'id': appt.id,
        'fecha': appt.fecha.isoformat(),
        'hora': appt.hora.strftime('%H:%M'),
        'motivo': appt.motivo,
        'paciente_id': appt.patient_id,
        'paciente_nombre': appt.patient.nombre,
    }


def list_appointments(doctor: Doctor) -> list[dict]:
    # Latest day first, earliest slot first within a day.
    qs = (
        Appointment.objects.filter(doctor=doctor)
        .select_related('patient')
        .order_by('-fecha', 'hora', 'id')
    )
    return [appointment_as_dict(a) for a in qs]


def create_appointment(doctor: Doctor, *, patient_id, fecha, hora, motivo) -> Appointment:
    patient = owned_patient(doctor, patient_id)
    return Appointment.objects.create(patient=patient, doctor=doctor, fecha=fecha, hora=hora, motivo=motivo)


def update_appointment(doctor: Doctor, appointment_id: int, *, patient_id, fecha, hora, motivo) -> None:
    owned_patient(doctor, patient_id)
    rows = Appointment.objects.filter(id=appointment_id, doctor=doctor).update(
        patient_id=patient_id, fecha=fecha, hora=hora, motivo=motivo,
    )
    if not rows:
        raise AuthzError('Cita no encontrada')


def delete_appointment(doctor: Doctor, appointment_id: int) -> None:
    deleted, _ = Appointment.objects.filter(id=appointment_id, doctor=doctor).delete()
    if not deleted:
        raise AuthzError('Cita no encontrada')
