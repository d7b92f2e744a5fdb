from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import RowNotFound
from core.models import Patient
from core.serializers.care import PrescriptionCreateSerializer
from core.serializers.rows import serialize_row
from core.services import prescriptions

from ..permissions import IsDoctor, IsPharmacist


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def create_prescription(request):
    s = PrescriptionCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = s.validated_data
    patient = Patient.objects.filter(id=data['patient_id']).first()
    if patient is None:
        raise RowNotFound('patient not found')
    rx = prescriptions.write_prescription(
        request.user,
        patient=patient,
        medications=[dict(m) for m in data['medications']],
        diagnosis=data.get('diagnosis', ''),
        instructions=data.get('instructions', ''),
        valid_until=data.get('valid_until'),
    )
    return Response({'ok': True, 'row': serialize_row(rx)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacist])
def dispense(request, prescription_id):
    rx = prescriptions.dispense(request.user, prescription_id)
    return Response({'ok': True, 'row': serialize_row(rx)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def cancel(request, prescription_id):
    rx = prescriptions.cancel(request.user, prescription_id)
    return Response({'ok': True, 'row': serialize_row(rx)})
