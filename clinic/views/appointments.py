from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import HasSessionCsrfToken
from clinic.serializers.appointment import (
    AppointmentIdSerializer,
    AppointmentSerializer,
    AppointmentUpdateSerializer,
)
from clinic.services import appointments as svc


@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, HasSessionCsrfToken])
def appointments(request):
    doctor = request.user

    if request.method == 'GET':
        return Response({'success': True, 'appointments': svc.list_appointments(doctor)})

    if request.method == 'POST':
        s = AppointmentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        appt = svc.create_appointment(doctor, **s.validated_data)
        return Response({
            'success': True,
            'message': 'Cita creada exitosamente',
            'appointment_id': appt.id,
        })

    if request.method == 'PUT':
        s = AppointmentUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        svc.update_appointment(doctor, vd.pop('id'), **vd)
        return Response({'success': True, 'message': 'Cita actualizada exitosamente'})

    s = AppointmentIdSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.delete_appointment(doctor, s.validated_data['id'])
    return Response({'success': True, 'message': 'Cita eliminada exitosamente'})
