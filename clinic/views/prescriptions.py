from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import HasSessionCsrfToken
from clinic.serializers.prescription import (
    PrescriptionIdSerializer,
    PrescriptionSerializer,
    PrescriptionUpdateSerializer,
)
from clinic.services import prescriptions as svc


@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, HasSessionCsrfToken])
def prescriptions(request):
    doctor = request.user

    if request.method == 'GET':
        return Response({'success': True, 'prescriptions': svc.list_prescriptions(doctor)})

    if request.method == 'POST':
        s = PrescriptionSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        rx = svc.create_prescription(doctor, **s.validated_data)
        return Response({
            'success': True,
            'message': 'Receta creada exitosamente',
            'prescription_id': rx.id,
        })

    if request.method == 'PUT':
        s = PrescriptionUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        svc.update_prescription(doctor, vd.pop('id'), **vd)
        return Response({'success': True, 'message': 'Receta actualizada exitosamente'})

    s = PrescriptionIdSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.delete_prescription(doctor, s.validated_data['id'])
    return Response({'success': True, 'message': 'Receta eliminada exitosamente'})
