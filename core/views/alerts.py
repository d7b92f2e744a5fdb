from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.serializers.rows import serialize_row
from core.services.alerts import acknowledge_alert

from ..permissions import IsCareStaff


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCareStaff])
def acknowledge(request, alert_id):
    """Idempotent: acknowledging twice returns the row with ``changed`` false."""
    alert, changed = acknowledge_alert(request.user, alert_id)
    return Response({'ok': True, 'changed': changed, 'row': serialize_row(alert)})
