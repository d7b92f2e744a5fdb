"""
Role-dispatched dashboard and navigation endpoints.

``/api/dashboard`` returns the stats cards of the caller's home screen;
``/api/routes`` lists the screens the caller's role may open.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import NotAllowed
from core.roles import UnknownRole, routes_for
from core.services.dashboards import build_dashboard


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard(request):
    try:
        data = build_dashboard(request.user)
    except UnknownRole as e:
        raise NotAllowed(str(e))
    return Response({'ok': True, **data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def routes(request):
    try:
        items = routes_for(request.user.role)
    except UnknownRole as e:
        raise NotAllowed(str(e))
    return Response({
        'ok': True,
        'routes': [{'path': r.path, 'title': r.title} for r in items],
    })
