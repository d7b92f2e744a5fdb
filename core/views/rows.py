"""
Generic table reads.

``GET /api/rows/<table>`` accepts PostgREST-style query parameters::

    ?patient_id=eq.<uuid>&is_acknowledged=is.false&order=created_at.desc&limit=50

Every other parameter is a ``column=op.value`` filter; repeated
parameters are combined with AND.  Rows are narrowed to what the caller
may see before filtering.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import InvalidInput
from core.realtime.filters import InvalidFilter, RowFilter
from core.services.tables import select_rows

RESERVED = {'order', 'limit'}


def _parse_order(raw: str) -> tuple[str, bool]:
    column, _, direction = (raw or 'created_at.desc').partition('.')
    if direction not in ('', 'asc', 'desc'):
        raise InvalidInput(f'invalid order direction {direction!r}')
    return column, direction != 'asc'


def _parse_limit(raw):
    if raw in (None, ''):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidInput('limit must be an integer')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_rows(request, table: str):
    params = request.query_params
    filters = []
    try:
        for column in params:
            if column in RESERVED:
                continue
            for expr in params.getlist(column):
                filters.append(RowFilter.from_param(column, expr))
    except InvalidFilter as e:
        raise InvalidInput(str(e))
    order_by, descending = _parse_order(params.get('order'))
    rows = select_rows(request.user, table, filters=filters, order_by=order_by,
                       descending=descending, limit=_parse_limit(params.get('limit')))
    return Response({'ok': True, 'table': table, 'rows': rows})
