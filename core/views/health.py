import logging

from channels.layers import get_channel_layer
from django.db import DatabaseError, connections
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def healthz(request):
    """Database round trip plus the name of the configured channel layer."""
    layer = get_channel_layer()
    body = {'ok': True, 'db': False, 'realtime': type(layer).__name__ if layer is not None else None}
    try:
        with connections['default'].cursor() as c:
            c.execute('SELECT 1')
            row = c.fetchone()
        body['db'] = bool(row and row[0] == 1)
    except DatabaseError as e:
        logger.error('health check failed: %s', e)
        body.update(ok=False, error=str(e))
        return JsonResponse(body, status=503)
    return JsonResponse(body)
