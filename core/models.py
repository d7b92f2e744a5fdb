"""
Database models for the CareLink backend.

Each model is one backend table.  Rows are exposed to clients through
the REST API and the realtime change feed with identical shapes (see
``core.serializers.rows``); ``TABLE_NAME`` on each model is the name
clients use in both places.
"""
from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models
from django.utils import timezone

from .roles import Role


class ProfileManager(UserManager):
    """Profiles sign in with their email; the username mirrors it."""

    def create_user(self, username=None, email=None, password=None, **extra_fields):
        email = self.normalize_email(email or username).lower()
        return super().create_user(email, email=email, password=password, **extra_fields)

    def create_superuser(self, username=None, email=None, password=None, **extra_fields):
        extra_fields.setdefault('role', Role.ADMIN)
        email = self.normalize_email(email or username).lower()
        return super().create_superuser(email, email=email, password=password, **extra_fields)


class User(AbstractUser):
    """A system user and their profile.

    The role decides which dashboard and which rows a user sees.  Users
    are never hard-deleted from within the application; admins deactivate
    them instead.
    """
    TABLE_NAME = 'profiles'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    full_name = models.CharField(max_length=255)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.PATIENT, db_index=True)
    phone = models.CharField(max_length=32, blank=True)
    department = models.CharField(max_length=128, blank=True)
    specialization = models.CharField(max_length=128, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProfileManager()

    @property
    def created_at(self):
        return self.date_joined

    def __str__(self) -> str:
        return f"{self.full_name or self.email} ({self.role})"


class Patient(models.Model):
    """Clinical record anchor for one patient."""
    TABLE_NAME = 'patients'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_record'
    )
    assigned_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='assigned_patients'
    )
    room_number = models.CharField(max_length=16, blank=True, null=True, db_index=True)
    blood_type = models.CharField(max_length=4, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    emergency_contact = models.CharField(max_length=255, blank=True)
    emergency_phone = models.CharField(max_length=32, blank=True)
    admission_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        name = self.user.full_name if self.user_id else 'unregistered'
        return f"{name} (room {self.room_number or '-'})"


class Vital(models.Model):
    """One measurement snapshot.  Immutable once written."""
    TABLE_NAME = 'vitals'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='vitals')
    heart_rate = models.IntegerField(null=True, blank=True)
    blood_pressure_systolic = models.IntegerField(null=True, blank=True)
    blood_pressure_diastolic = models.IntegerField(null=True, blank=True)
    oxygen_saturation = models.FloatField(null=True, blank=True)
    temperature = models.FloatField(null=True, blank=True)
    respiratory_rate = models.IntegerField(null=True, blank=True)
    device_id = models.CharField(max_length=64, blank=True, null=True)
    is_alert = models.BooleanField(default=False)
    recorded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [models.Index(fields=['patient', 'recorded_at'], name='vital_patient_recorded_idx')]

    def __str__(self) -> str:
        return f"vital {self.id} p={self.patient_id} @ {self.recorded_at:%F %T}"


class Alert(models.Model):
    """A triggered threshold breach.  Acknowledged at most once."""
    TABLE_NAME = 'alerts'

    SEVERITY_LOW = 'low'
    SEVERITY_MEDIUM = 'medium'
    SEVERITY_HIGH = 'high'
    SEVERITY_CRITICAL = 'critical'
    SEVERITY_CHOICES = (
        (SEVERITY_LOW, 'low'),
        (SEVERITY_MEDIUM, 'medium'),
        (SEVERITY_HIGH, 'high'),
        (SEVERITY_CRITICAL, 'critical'),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='alerts')
    vital = models.ForeignKey(Vital, null=True, blank=True, on_delete=models.SET_NULL, related_name='alerts')
    alert_type = models.CharField(max_length=64)
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, default=SEVERITY_MEDIUM, db_index=True)
    message = models.TextField()
    is_acknowledged = models.BooleanField(default=False, db_index=True)
    acknowledged_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='acknowledged_alerts'
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    def __str__(self) -> str:
        return f"{self.severity} {self.alert_type} p={self.patient_id}"


class Message(models.Model):
    """A directed chat line between two profiles."""
    TABLE_NAME = 'messages'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sender = models.ForeignKey(User, on_delete=models.CASCADE, related_name='sent_messages')
    receiver = models.ForeignKey(User, on_delete=models.CASCADE, related_name='received_messages')
    content = models.TextField()
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=['receiver', 'is_read'], name='message_receiver_read_idx'),
            models.Index(fields=['sender', 'receiver', 'created_at'], name='message_pair_created_idx'),
        ]

    def __str__(self) -> str:
        return f"msg {self.id} {self.sender_id}->{self.receiver_id}"


class Appointment(models.Model):
    """A scheduled online or in-person encounter."""
    TABLE_NAME = 'appointments'

    TYPE_ONLINE = 'online'
    TYPE_IN_PERSON = 'in_person'
    TYPE_CHOICES = ((TYPE_ONLINE, 'online'), (TYPE_IN_PERSON, 'in person'))

    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'pending'),
        (STATUS_CONFIRMED, 'confirmed'),
        (STATUS_COMPLETED, 'completed'),
        (STATUS_CANCELLED, 'cancelled'),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='doctor_appointments')
    scheduled_at = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField(default=30)
    appointment_type = models.CharField(max_length=16, choices=TYPE_CHOICES, default=TYPE_IN_PERSON)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['doctor', 'scheduled_at'], name='appt_doctor_scheduled_idx')]

    def __str__(self) -> str:
        return f"appt {self.id} {self.status} @ {self.scheduled_at:%F %T}"


class Prescription(models.Model):
    """A medication order written by a doctor and dispensed by a pharmacist."""
    TABLE_NAME = 'prescriptions'

    STATUS_ACTIVE = 'active'
    STATUS_DISPENSED = 'dispensed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'active'),
        (STATUS_DISPENSED, 'dispensed'),
        (STATUS_CANCELLED, 'cancelled'),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='written_prescriptions')
    diagnosis = models.TextField(blank=True)
    # [{"name": ..., "dosage": ..., "frequency": ...}]
    medications = models.JSONField(default=list)
    instructions = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    valid_until = models.DateField(null=True, blank=True)
    dispensed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='dispensed_prescriptions'
    )
    dispensed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    def __str__(self) -> str:
        return f"rx {self.id} {self.status}"


class DoctorChangeRequest(models.Model):
    """A patient's request to be moved to another doctor, decided by an admin."""
    TABLE_NAME = 'doctor_change_requests'

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'pending'),
        (STATUS_APPROVED, 'approved'),
        (STATUS_REJECTED, 'rejected'),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='doctor_change_requests')
    current_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    requested_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    reason = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    reviewed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='reviewed_doctor_changes'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    def __str__(self) -> str:
        return f"doctor change {self.id} {self.status}"


class AuditEvent(models.Model):
    TABLE_NAME = 'audit_logs'

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    table_name = models.CharField(max_length=64, blank=True, null=True)
    record_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['table_name', 'record_id', 'created_at'], name='audit_record_created_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"


FEED_MODELS = (User, Patient, Vital, Alert, Message, Appointment, Prescription, DoctorChangeRequest)
TABLES = {m.TABLE_NAME: m for m in FEED_MODELS}
