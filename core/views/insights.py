from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from core.serializers.care import InsightRequestSerializer
from core.services.insights import request_insight


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([ScopedRateThrottle])
def insights(request):
    """Proxy one analysis request to the AI gateway."""
    s = InsightRequestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = s.validated_data
    result = request_insight(data['type'], vitals=data.get('vitals'), alerts=data.get('alerts'))
    return Response(result)

insights.cls.throttle_scope = 'insights'
