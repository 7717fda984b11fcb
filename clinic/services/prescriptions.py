from __future__ import annotations

from clinic.exceptions import AuthzError
from clinic.models import Doctor, Prescription
from clinic.services.patients import owned_patient


def prescription_as_dict(rx: Prescription) -> dict:
    return {
        'id': rx.id,
        'paciente_id': rx.patient_id,
        'paciente_nombre': rx.patient.nombre,
        'medicamento': rx.medicamento,
        'dosis': rx.dosis,
        'frecuencia': rx.frecuencia,
        'duracion': rx.duracion,
        'created_at': rx.created_at.isoformat(),
    }


def list_prescriptions(doctor: Doctor) -> list[dict]:
    qs = (
        Prescription.objects.filter(doctor=doctor)
        .select_related('patient')
        .order_by('-created_at', '-id')
    )
    return [prescription_as_dict(rx) for rx in qs]


def create_prescription(doctor: Doctor, *, patient_id, medicamento, dosis, frecuencia, duracion) -> Prescription:
    patient = owned_patient(doctor, patient_id)
    return Prescription.objects.create(
        patient=patient, doctor=doctor,
        medicamento=medicamento, dosis=dosis, frecuencia=frecuencia, duracion=duracion,
    )


def update_prescription(doctor: Doctor, prescription_id: int, *, patient_id, medicamento, dosis,
                        frecuencia, duracion) -> None:
    owned_patient(doctor, patient_id)
    rows = Prescription.objects.filter(id=prescription_id, doctor=doctor).update(
        patient_id=patient_id, medicamento=medicamento, dosis=dosis,
        frecuencia=frecuencia, duracion=duracion,
    )
    if not rows:
        raise AuthzError('Receta no encontrada')


def delete_prescription(doctor: Doctor, prescription_id: int) -> None:
    deleted, _ = Prescription.objects.filter(id=prescription_id, doctor=doctor).delete()
    if not deleted:
        raise AuthzError('Receta no encontrada')
