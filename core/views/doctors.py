from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.models import User
from core.serializers.care import DoctorChangeRequestSerializer, DoctorChangeReviewSerializer
from core.serializers.rows import serialize_row, serialize_rows
from core.services import doctors

from ..permissions import IsAdminRole


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_doctors(request):
    """Active doctors, optionally narrowed by ``?specialization=`` and ``?q=``."""
    qs = doctors.list_doctors(
        specialization=request.query_params.get('specialization', ''),
        search=request.query_params.get('q', ''),
    )
    return Response({'ok': True, 'rows': serialize_rows(User.TABLE_NAME, qs)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def request_change(request):
    s = DoctorChangeRequestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = doctors.request_change(
        request.user,
        requested_doctor_id=s.validated_data['requested_doctor_id'],
        reason=s.validated_data.get('reason', ''),
    )
    return Response({'ok': True, 'row': serialize_row(req)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def review_change(request, request_id):
    s = DoctorChangeReviewSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = doctors.review(
        request.user, request_id,
        approve=s.validated_data['decision'] == 'approve',
        doctor_id=s.validated_data.get('doctor_id'),
    )
    return Response({'ok': True, 'row': serialize_row(req)})
