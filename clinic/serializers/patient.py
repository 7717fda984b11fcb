from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from rest_framework import serializers

from .fields import CleanCharField, id_field, messages

NAME_AND_EMAIL = 'Nombre y email son obligatorios'


class PatientSerializer(serializers.Serializer):
    nombre = CleanCharField(error_messages=messages(NAME_AND_EMAIL))
    email = CleanCharField(error_messages=messages(NAME_AND_EMAIL))
    telefono = CleanCharField(required=False, allow_blank=True, allow_null=True, default='')

    def validate_email(self, v):
        try:
            validate_email(v)
        except DjangoValidationError:
            raise serializers.ValidationError('Email inválido')
        return v

    def validate_telefono(self, v):
        return v or ''


class PatientUpdateSerializer(PatientSerializer):
    id = id_field('ID de paciente inválido')

    def get_fields(self):
        fields = super().get_fields()
        return {'id': fields.pop('id'), **fields}


class PatientIdSerializer(serializers.Serializer):
    id = id_field('ID de paciente inválido')


class PatientNoteSerializer(serializers.Serializer):
    patient_id = id_field('ID de paciente inválido')
    texto = CleanCharField(truncate_to=None, error_messages=messages('El texto de la nota es obligatorio'))
