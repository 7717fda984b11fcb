from rest_framework import serializers

from .fields import CleanCharField, DateStringField, TimeStringField, id_field, REQUIRED


class AppointmentSerializer(serializers.Serializer):
    patient_id = id_field(REQUIRED)
    fecha = DateStringField()
    hora = TimeStringField()
    motivo = CleanCharField()


class AppointmentUpdateSerializer(AppointmentSerializer):
    id = id_field('ID de cita inválido')

    def get_fields(self):
        fields = super().get_fields()
        return {'id': fields.pop('id'), **fields}


class AppointmentIdSerializer(serializers.Serializer):
    id = id_field('ID de cita inválido')
