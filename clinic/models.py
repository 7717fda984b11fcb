"""
Database models for the consultorio backend.

A doctor is the single principal of the system and owns every patient,
appointment and prescription row.  Ownership is always checked by the
request handlers through ``doctor_id`` filters; the foreign keys here
only keep the references consistent.
"""
from __future__ import annotations

from django.contrib.auth.hashers import check_password, make_password
from django.db import models


class Doctor(models.Model):
    """An authenticated principal of the application.

    ``username`` is the login name.  ``password`` stores an Argon2id hash
    produced by :func:`django.contrib.auth.hashers.make_password`.
    """
    ROLE = 'doctor'

    username = models.CharField(max_length=50, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default='')
    email = models.EmailField(max_length=255, unique=True)
    password = models.CharField(max_length=255)
    specialization = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'doctors'

    def __str__(self) -> str:
        return f"{self.username} ({self.specialization or self.ROLE})"

    # DRF's IsAuthenticated only looks at this attribute.
    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def role(self) -> str:
        return self.ROLE

    def set_password(self, raw_password: str) -> None:
        self.password = make_password(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password(raw_password, self.password)

    def profile(self) -> dict:
        return {
            'id': self.id,
            'nombre': self.first_name,
            'apellido': self.last_name,
            'especialidad': self.specialization,
            'email': self.email,
        }


class Patient(models.Model):
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='patients')
    nombre = models.CharField(max_length=255)
    email = models.CharField(max_length=255)
    telefono = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'patients'
        indexes = [models.Index(fields=['doctor', 'created_at'], name='patients_doctor__7c1a2e_idx')]

    def __str__(self) -> str:
        return f"{self.nombre} (doctor={self.doctor_id})"


class PatientNote(models.Model):
    """Append-only clinical note attached to a patient."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='notes')
    texto = models.TextField()
    fecha = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'patient_notes'
        ordering = ['fecha', 'id']

    def as_dict(self) -> dict:
        return {'texto': self.texto, 'fecha': self.fecha.isoformat()}


class Appointment(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='appointments')
    fecha = models.DateField()
    hora = models.TimeField()
    motivo = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'appointments'
        indexes = [models.Index(fields=['doctor', 'fecha', 'hora'], name='appointment_doctor__3e9d41_idx')]

    def __str__(self) -> str:
        return f"appointment {self.id} {self.fecha} {self.hora}"


class Prescription(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='prescriptions')
    medicamento = models.CharField(max_length=255)
    dosis = models.CharField(max_length=255)
    frecuencia = models.CharField(max_length=255)
    # days
    duracion = models.PositiveIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'prescriptions'
        indexes = [models.Index(fields=['doctor', 'created_at'], name='prescriptio_doctor__a4f2c8_idx')]

    def __str__(self) -> str:
        return f"{self.medicamento} x{self.duracion}d (patient={self.patient_id})"


class LoginAttempt(models.Model):
    """Append-only record of every evaluated login attempt."""
    username = models.CharField(max_length=255, db_index=True)
    ip_address = models.CharField(max_length=64, blank=True, default='')
    success = models.BooleanField(default=False)
    created_at = models.DateTimeField(db_index=True)

    class Meta:
        db_table = 'login_attempts'
        indexes = [models.Index(fields=['username', 'created_at'], name='login_attem_usernam_5b1f0e_idx')]

    def __str__(self) -> str:
        return f"{self.username} {'ok' if self.success else 'fail'} @ {self.created_at}"
