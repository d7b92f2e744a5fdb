from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import RowNotFound
from core.models import Patient
from core.serializers.patient import VitalReadingSerializer
from core.serializers.rows import serialize_row
from core.services.vitals import ingest_vital

from ..permissions import IsCareStaff


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCareStaff])
def record_vital(request):
    """Store one reading and raise alerts for out-of-band metrics."""
    s = VitalReadingSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    reading = dict(s.validated_data)
    patient = Patient.objects.filter(id=reading.pop('patient_id')).first()
    if patient is None:
        raise RowNotFound('patient not found')
    vital, alerts = ingest_vital(patient, reading)
    return Response({
        'ok': True,
        'row': serialize_row(vital),
        'alerts': [serialize_row(a) for a in alerts],
    }, status=201)
