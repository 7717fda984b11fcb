from rest_framework import serializers

from .fields import CleanCharField, id_field, messages, REQUIRED

# PositiveIntegerField upper bound.
MAX_DURACION = 2147483647


class PrescriptionSerializer(serializers.Serializer):
    patient_id = id_field(REQUIRED)
    medicamento = CleanCharField()
    dosis = CleanCharField()
    frecuencia = CleanCharField()
    duracion = serializers.IntegerField(
        min_value=1,
        max_value=MAX_DURACION,
        error_messages={
            **messages(REQUIRED, 'required', 'null'),
            **messages('La duración debe ser un número entero positivo',
                       'invalid', 'min_value', 'max_value', 'max_string_length'),
        },
    )


class PrescriptionUpdateSerializer(PrescriptionSerializer):
    id = id_field('ID de receta inválido')

    def get_fields(self):
        fields = super().get_fields()
        return {'id': fields.pop('id'), **fields}


class PrescriptionIdSerializer(serializers.Serializer):
    id = id_field('ID de receta inválido')
