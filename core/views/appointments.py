from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import InvalidInput, RowNotFound
from core.models import Patient
from core.roles import Role
from core.serializers.care import AppointmentCreateSerializer, AppointmentStatusSerializer
from core.serializers.rows import serialize_row
from core.services.appointments import book_appointment, set_status
from core.services.visibility import patient_record_for


def _patient_for_booking(user, patient_id):
    if user.role == Role.PATIENT:
        record = patient_record_for(user)
        if record is None:
            raise RowNotFound('no patient record for this account')
        return record
    if not patient_id:
        raise InvalidInput('patient_id is required')
    record = Patient.objects.filter(id=patient_id).first()
    if record is None:
        raise RowNotFound('patient not found')
    return record


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_appointment(request):
    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = s.validated_data
    appt = book_appointment(
        request.user,
        patient=_patient_for_booking(request.user, data.get('patient_id')),
        doctor_id=data['doctor_id'],
        scheduled_at=data['scheduled_at'],
        appointment_type=data['appointment_type'],
        duration_minutes=data['duration_minutes'],
        notes=data.get('notes', ''),
    )
    return Response({'ok': True, 'row': serialize_row(appt)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def appointment_status(request, appointment_id):
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = set_status(request.user, appointment_id, s.validated_data['status'])
    return Response({'ok': True, 'row': serialize_row(appt)})
