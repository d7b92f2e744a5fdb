"""
Django admin registrations for the core models.

Superusers can inspect and correct rows via ``/admin/``.  Edits made
here go through the ORM, so they are published on the change feed like
any other write.
"""

from django.contrib import admin

from .models import (
    Alert, Appointment, AuditEvent, DoctorChangeRequest, Message, Patient, Prescription, User, Vital,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('email', 'full_name', 'role', 'department', 'is_active', 'is_staff')
    list_filter = ('role', 'is_active')
    search_fields = ('email', 'full_name', 'phone')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'room_number', 'assigned_doctor', 'admission_date')
    search_fields = ('user__full_name', 'user__email', 'room_number')
    raw_id_fields = ('user', 'assigned_doctor')


@admin.register(Vital)
class VitalAdmin(admin.ModelAdmin):
    list_display = ('patient', 'heart_rate', 'oxygen_saturation', 'temperature', 'is_alert', 'recorded_at')
    list_filter = ('is_alert',)
    raw_id_fields = ('patient',)


@admin.register(Alert)
class AlertAdmin(admin.ModelAdmin):
    list_display = ('patient', 'alert_type', 'severity', 'is_acknowledged', 'acknowledged_by', 'created_at')
    list_filter = ('severity', 'is_acknowledged')
    search_fields = ('message', 'alert_type')
    raw_id_fields = ('patient', 'vital', 'acknowledged_by')


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ('sender', 'receiver', 'is_read', 'created_at')
    list_filter = ('is_read',)
    search_fields = ('sender__email', 'receiver__email')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('patient', 'doctor', 'scheduled_at', 'appointment_type', 'status')
    list_filter = ('status', 'appointment_type')
    raw_id_fields = ('patient', 'doctor')


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('patient', 'doctor', 'status', 'dispensed_by', 'created_at')
    list_filter = ('status',)
    raw_id_fields = ('patient', 'doctor', 'dispensed_by')


@admin.register(DoctorChangeRequest)
class DoctorChangeRequestAdmin(admin.ModelAdmin):
    list_display = ('patient', 'current_doctor', 'requested_doctor', 'status', 'reviewed_by', 'created_at')
    list_filter = ('status',)
    raw_id_fields = ('patient', 'current_doctor', 'requested_doctor', 'reviewed_by')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'table_name', 'record_id', 'created_at')
    list_filter = ('action', 'table_name')
    search_fields = ('record_id', 'user__email')
