from rest_framework import serializers

from core.models import Appointment
from core.services.insights import KINDS


class MessageSendSerializer(serializers.Serializer):
    receiver_id = serializers.UUIDField()
    content = serializers.CharField(max_length=2000, trim_whitespace=True)


class MessageReadSerializer(serializers.Serializer):
    peer_id = serializers.UUIDField()
    up_to = serializers.UUIDField(required=False)


class AppointmentCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField(required=False)
    doctor_id = serializers.UUIDField()
    scheduled_at = serializers.DateTimeField()
    appointment_type = serializers.ChoiceField(choices=Appointment.TYPE_CHOICES, default=Appointment.TYPE_IN_PERSON)
    duration_minutes = serializers.IntegerField(min_value=5, max_value=480, default=30)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000, default='')


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Appointment.STATUS_CHOICES)


class MedicationSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=128)
    dosage = serializers.CharField(required=False, allow_blank=True, max_length=64, default='')
    frequency = serializers.CharField(required=False, allow_blank=True, max_length=64, default='')


class PrescriptionCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    medications = MedicationSerializer(many=True, allow_empty=False)
    diagnosis = serializers.CharField(required=False, allow_blank=True, default='')
    instructions = serializers.CharField(required=False, allow_blank=True, default='')
    valid_until = serializers.DateField(required=False, allow_null=True)


class InsightRequestSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=KINDS, default='general')
    vitals = serializers.JSONField(required=False)
    alerts = serializers.JSONField(required=False)


class DoctorChangeRequestSerializer(serializers.Serializer):
    requested_doctor_id = serializers.UUIDField()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=2000, default='')


class DoctorChangeReviewSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=('approve', 'reject'))
    doctor_id = serializers.UUIDField(required=False, allow_null=True)
