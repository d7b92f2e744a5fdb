import bleach
from rest_framework import serializers


class PatientFieldsSerializer(serializers.Serializer):
    room_number = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=16)
    blood_type = serializers.CharField(required=False, allow_blank=True, max_length=4)
    allergies = serializers.ListField(child=serializers.CharField(max_length=128), required=False)
    date_of_birth = serializers.DateField(required=False, allow_null=True)
    emergency_contact = serializers.CharField(required=False, allow_blank=True, max_length=255)
    emergency_phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    admission_date = serializers.DateField(required=False, allow_null=True)
    assigned_doctor_id = serializers.UUIDField(required=False, allow_null=True)

    def validate_allergies(self, v):
        return [bleach.clean(a.strip(), strip=True) for a in v if a.strip()]

    def validate_emergency_contact(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class PatientCreateSerializer(PatientFieldsSerializer):
    full_name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)

    def validate_full_name(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('name must be at least 2 characters')
        return v


class VitalReadingSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    heart_rate = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=350)
    blood_pressure_systolic = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=350)
    blood_pressure_diastolic = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=250)
    oxygen_saturation = serializers.FloatField(required=False, allow_null=True, min_value=0, max_value=100)
    temperature = serializers.FloatField(required=False, allow_null=True, min_value=20, max_value=45)
    respiratory_rate = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=120)
    device_id = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    recorded_at = serializers.DateTimeField(required=False)
