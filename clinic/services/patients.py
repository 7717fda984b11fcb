"""
Patient records and their notes, always scoped to the owning doctor.
"""
from __future__ import annotations

from django.db import transaction
from django.utils import timezone

from clinic.exceptions import AuthzError
from clinic.models import Appointment, Doctor, Patient, PatientNote, Prescription

# Rows that reference a patient, removed before the patient itself.
DEPENDENT_MODELS = (PatientNote, Appointment, Prescription)

PATIENT_NOT_FOUND = 'Paciente no encontrado'


def owned_patient(doctor: Doctor, patient_id: int) -> Patient:
    patient = Patient.objects.filter(id=patient_id, doctor=doctor).first()
    if patient is None:
        raise AuthzError(PATIENT_NOT_FOUND)
    return patient


def patient_as_dict(patient: Patient) -> dict:
    return {
        'id': patient.id,
        'nombre': patient.nombre,
        'email': patient.email,
        'telefono': patient.telefono,
        'notas': [note.as_dict() for note in patient.notes.all()],
    }


def list_patients(doctor: Doctor) -> list[dict]:
    qs = (
        Patient.objects.filter(doctor=doctor)
        .prefetch_related('notes')
        .order_by('-created_at', '-id')
    )
    return [patient_as_dict(p) for p in qs]


def create_patient(doctor: Doctor, *, nombre: str, email: str, telefono: str = '') -> Patient:
    return Patient.objects.create(doctor=doctor, nombre=nombre, email=email, telefono=telefono)


def update_patient(doctor: Doctor, patient_id: int, *, nombre: str, email: str, telefono: str = '') -> None:
    rows = Patient.objects.filter(id=patient_id, doctor=doctor).update(
        nombre=nombre, email=email, telefono=telefono,
    )
    if not rows:
        raise AuthzError(PATIENT_NOT_FOUND)


def delete_patient(doctor: Doctor, patient_id: int) -> None:
    """Remove a patient and everything hanging off it, all or nothing."""
    with transaction.atomic():
        patient = owned_patient(doctor, patient_id)
        for model in DEPENDENT_MODELS:
            model.objects.filter(patient_id=patient.id).delete()
        Patient.objects.filter(id=patient.id, doctor=doctor).delete()


def add_note(doctor: Doctor, patient_id: int, texto: str) -> PatientNote:
    patient = owned_patient(doctor, patient_id)
    return PatientNote.objects.create(patient=patient, texto=texto, fecha=timezone.localdate())
