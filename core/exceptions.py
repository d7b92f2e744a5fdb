from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler


class CareLinkError(Exception):
    """Domain error raised by the service layer.

    Carries the HTTP status and error code the API renders for it, so
    services stay independent of views.
    """
    status = 400
    code = 'bad_request'

    def __init__(self, message: str = '', *, code: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code


class InvalidInput(CareLinkError):
    status = 400
    code = 'invalid_input'


class NotAllowed(CareLinkError):
    status = 403
    code = 'forbidden'


class RowNotFound(CareLinkError):
    status = 404
    code = 'not_found'


class InvalidTransition(CareLinkError):
    status = 409
    code = 'invalid_transition'


class UpstreamError(CareLinkError):
    status = 502
    code = 'upstream_error'


class UpstreamQuotaExceeded(UpstreamError):
    status = 402
    code = 'quota_exceeded'


class UpstreamRateLimited(UpstreamError):
    status = 429
    code = 'rate_limited'


def api_exception_handler(exc, context):
    if isinstance(exc, CareLinkError):
        return Response({'ok': False, 'error': {'code': exc.code, 'message': exc.message}}, status=exc.status)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = str(resp.data)
    return Response({'ok': False, 'error': {'code': 'api_error', 'message': detail}}, status=resp.status_code)
