"""
Patient endpoints.

``/api/patients`` handles the four verbs on the patient list of the
logged-in doctor; ``/api/patients/notes`` appends a note.  Every query
is scoped to ``request.user`` and rows of other doctors behave as if
they did not exist.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import HasSessionCsrfToken
from clinic.serializers.patient import (
    PatientIdSerializer,
    PatientNoteSerializer,
    PatientSerializer,
    PatientUpdateSerializer,
)
from clinic.services import patients as svc


@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, HasSessionCsrfToken])
def patients(request):
    doctor = request.user

    if request.method == 'GET':
        return Response({'success': True, 'patients': svc.list_patients(doctor)})

    if request.method == 'POST':
        s = PatientSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        patient = svc.create_patient(doctor, **s.validated_data)
        return Response({
            'success': True,
            'message': 'Paciente creado exitosamente',
            'patient_id': patient.id,
        })

    if request.method == 'PUT':
        s = PatientUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        svc.update_patient(doctor, vd.pop('id'), **vd)
        return Response({'success': True, 'message': 'Paciente actualizado exitosamente'})

    s = PatientIdSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.delete_patient(doctor, s.validated_data['id'])
    return Response({'success': True, 'message': 'Paciente eliminado exitosamente'})


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasSessionCsrfToken])
def patient_notes(request):
    s = PatientNoteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    note = svc.add_note(request.user, s.validated_data['patient_id'], s.validated_data['texto'])
    return Response({
        'success': True,
        'message': 'Nota agregada exitosamente',
        'note': note.as_dict(),
    })
