import bleach
from rest_framework import serializers

from core.roles import Role


class SignInSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate_email(self, v):
        return (v or '').strip().lower()

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('password is required')
        return v


class SignUpSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    full_name = serializers.CharField(max_length=255)
    role = serializers.ChoiceField(choices=Role.choices, required=False)

    def validate_email(self, v):
        return (v or '').strip().lower()

    def validate_full_name(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('name must be at least 2 characters')
        return v


class StaffCreateSerializer(SignUpSerializer):
    role = serializers.ChoiceField(choices=Role.choices)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    department = serializers.CharField(required=False, allow_blank=True, max_length=128)
    specialization = serializers.CharField(required=False, allow_blank=True, max_length=128)


class RefreshSerializer(serializers.Serializer):
    refresh = serializers.CharField()


class SignOutSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=False, allow_blank=True)
