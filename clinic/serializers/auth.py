import re

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from rest_framework import serializers

from clinic.models import Doctor
from .fields import CleanCharField, REQUIRED, messages

USERNAME_LENGTH = 'El nombre de usuario debe tener entre 3 y 50 caracteres'
STRONG_PASSWORD = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z\d]).{8,}$')


class LoginSerializer(serializers.Serializer):
    csrf_token = serializers.CharField(required=False, allow_blank=True, write_only=True)
    username = CleanCharField(truncate_to=None)
    password = serializers.CharField(trim_whitespace=False, write_only=True, error_messages=messages(REQUIRED))

    def validate_username(self, v):
        if not 3 <= len(v) <= 50:
            raise serializers.ValidationError(USERNAME_LENGTH)
        return v

    def validate_password(self, v):
        if len(v) < 6:
            raise serializers.ValidationError('La contraseña debe tener al menos 6 caracteres')
        return v


class RegisterSerializer(serializers.Serializer):
    csrf_token = serializers.CharField(required=False, allow_blank=True, write_only=True)
    username = CleanCharField(truncate_to=None, error_messages=messages('Todos los campos obligatorios deben ser completados'))
    email = CleanCharField(error_messages=messages('Todos los campos obligatorios deben ser completados'))
    password = serializers.CharField(
        trim_whitespace=False, write_only=True,
        error_messages=messages('Todos los campos obligatorios deben ser completados'),
    )
    nombre = CleanCharField(truncate_to=100,
                            error_messages=messages('Todos los campos obligatorios deben ser completados'))
    apellido = CleanCharField(truncate_to=100, required=False, allow_blank=True, default='')
    especialidad = CleanCharField(required=False, allow_blank=True, default='')

    def validate_username(self, v):
        if not 3 <= len(v) <= 50:
            raise serializers.ValidationError(USERNAME_LENGTH)
        return v

    def validate_email(self, v):
        try:
            validate_email(v)
        except DjangoValidationError:
            raise serializers.ValidationError('El formato del email no es válido')
        return v

    def validate_password(self, v):
        if not STRONG_PASSWORD.match(v):
            raise serializers.ValidationError(
                'La contraseña debe tener al menos 8 caracteres, incluir mayúsculas, '
                'minúsculas, números y símbolos'
            )
        return v

    def validate_nombre(self, v):
        if len(v) < 2:
            raise serializers.ValidationError('El nombre debe tener al menos 2 caracteres')
        return v

    def validate(self, attrs):
        taken = Doctor.objects.filter(username=attrs['username']) | Doctor.objects.filter(email=attrs['email'])
        if taken.exists():
            raise serializers.ValidationError({'username': 'El usuario o email ya están registrados'})
        return attrs

    def create(self, validated_data):
        doctor = Doctor(
            username=validated_data['username'],
            email=validated_data['email'],
            first_name=validated_data['nombre'],
            last_name=validated_data.get('apellido', ''),
            specialization=validated_data.get('especialidad', ''),
        )
        doctor.set_password(validated_data['password'])
        doctor.save()
        return doctor
