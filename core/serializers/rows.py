"""
Row serializers shared by the REST API and the realtime change feed.

Both paths must emit the same row shape: a client that reconciles feed
events into a snapshot fetched over HTTP compares rows field by field,
so every value here is a JSON primitive (UUIDs as strings, timestamps
as ISO 8601).
"""
from rest_framework import serializers

from core.models import Alert, Appointment, DoctorChangeRequest, Message, Patient, Prescription, User, Vital


class ProfileRowSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True)
    created_at = serializers.DateTimeField(source='date_joined', read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'full_name', 'role', 'phone', 'department',
            'specialization', 'is_active', 'created_at', 'updated_at',
        ]


class PatientRowSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True)
    user_id = serializers.UUIDField(read_only=True, allow_null=True)
    assigned_doctor_id = serializers.UUIDField(read_only=True, allow_null=True)
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = Patient
        fields = [
            'id', 'user_id', 'full_name', 'assigned_doctor_id', 'room_number',
            'blood_type', 'allergies', 'date_of_birth', 'emergency_contact',
            'emergency_phone', 'admission_date', 'created_at', 'updated_at',
        ]

    def get_full_name(self, obj):
        return obj.user.full_name if obj.user_id else None


class VitalRowSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True)
    patient_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Vital
        fields = [
            'id', 'patient_id', 'heart_rate', 'blood_pressure_systolic',
            'blood_pressure_diastolic', 'oxygen_saturation', 'temperature',
            'respiratory_rate', 'device_id', 'is_alert', 'recorded_at',
        ]


class AlertRowSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True)
    patient_id = serializers.UUIDField(read_only=True)
    vital_id = serializers.UUIDField(read_only=True, allow_null=True)
    acknowledged_by = serializers.UUIDField(source='acknowledged_by_id', read_only=True, allow_null=True)

    class Meta:
        model = Alert
        fields = [
            'id', 'patient_id', 'vital_id', 'alert_type', 'severity', 'message',
            'is_acknowledged', 'acknowledged_by', 'created_at',
        ]


class MessageRowSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True)
    sender_id = serializers.UUIDField(read_only=True)
    receiver_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Message
        fields = ['id', 'sender_id', 'receiver_id', 'content', 'is_read', 'created_at']


class AppointmentRowSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True)
    patient_id = serializers.UUIDField(read_only=True)
    doctor_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Appointment
        fields = [
            'id', 'patient_id', 'doctor_id', 'scheduled_at', 'duration_minutes',
            'appointment_type', 'status', 'notes', 'created_at', 'updated_at',
        ]


class PrescriptionRowSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True)
    patient_id = serializers.UUIDField(read_only=True)
    doctor_id = serializers.UUIDField(read_only=True)
    dispensed_by = serializers.UUIDField(source='dispensed_by_id', read_only=True, allow_null=True)

    class Meta:
        model = Prescription
        fields = [
            'id', 'patient_id', 'doctor_id', 'diagnosis', 'medications',
            'instructions', 'status', 'valid_until', 'dispensed_by',
            'dispensed_at', 'created_at',
        ]


class DoctorChangeRequestRowSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True)
    patient_id = serializers.UUIDField(read_only=True)
    current_doctor_id = serializers.UUIDField(read_only=True, allow_null=True)
    requested_doctor_id = serializers.UUIDField(read_only=True, allow_null=True)
    reviewed_by = serializers.UUIDField(source='reviewed_by_id', read_only=True, allow_null=True)

    class Meta:
        model = DoctorChangeRequest
        fields = [
            'id', 'patient_id', 'current_doctor_id', 'requested_doctor_id', 'reason',
            'status', 'reviewed_by', 'reviewed_at', 'created_at',
        ]


ROW_SERIALIZERS = {
    User.TABLE_NAME: ProfileRowSerializer,
    Patient.TABLE_NAME: PatientRowSerializer,
    Vital.TABLE_NAME: VitalRowSerializer,
    Alert.TABLE_NAME: AlertRowSerializer,
    Message.TABLE_NAME: MessageRowSerializer,
    Appointment.TABLE_NAME: AppointmentRowSerializer,
    Prescription.TABLE_NAME: PrescriptionRowSerializer,
    DoctorChangeRequest.TABLE_NAME: DoctorChangeRequestRowSerializer,
}


def serialize_row(instance) -> dict:
    return dict(ROW_SERIALIZERS[instance.TABLE_NAME](instance).data)


def serialize_rows(table: str, instances) -> list[dict]:
    return [dict(d) for d in ROW_SERIALIZERS[table](instances, many=True).data]
