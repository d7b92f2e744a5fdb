"""
Generic table reads for the REST API and in-process live views.

``select_rows`` is the single read path for every table: visibility
first, then ``column=op.value`` filters, ordering and a row limit.  The
rows it returns have exactly the shape carried by change-feed events.
"""
from __future__ import annotations

from typing import Iterable, Optional

from django.core.exceptions import ValidationError as DjangoValidationError

from core.exceptions import InvalidInput, RowNotFound
from core.models import TABLES
from core.realtime.filters import RowFilter
from core.serializers.rows import ROW_SERIALIZERS, serialize_rows
from core.services.visibility import visible_queryset

MAX_LIMIT = 500

# Row columns that are not model fields of the same name
COLUMN_ALIASES = {
    'profiles': {'created_at': 'date_joined'},
    'patients': {'full_name': 'user__full_name'},
}


def columns_for(table: str) -> list[str]:
    return list(ROW_SERIALIZERS[table].Meta.fields)


def _model_column(table: str, column: str) -> str:
    if column not in columns_for(table):
        raise InvalidInput(f'unknown column {column!r} for {table}')
    return COLUMN_ALIASES.get(table, {}).get(column, column)


def select_rows(user, table: str, *, filters: Iterable[RowFilter] = (), order_by: str = 'created_at',
                descending: bool = True, limit: Optional[int] = None) -> list[dict]:
    if table not in TABLES:
        raise RowNotFound(f'unknown table {table!r}')
    if limit is not None and not 1 <= limit <= MAX_LIMIT:
        raise InvalidInput(f'limit must be between 1 and {MAX_LIMIT}')
    column = _model_column(table, order_by)
    qs = visible_queryset(user, table)
    try:
        for f in filters:
            lookup, value, negate = f.lookup()
            lookup = _model_column(table, f.column) + lookup[len(f.column):]
            qs = qs.exclude(**{lookup: value}) if negate else qs.filter(**{lookup: value})
        qs = qs.order_by(f"-{column}" if descending else column, 'pk')
        if table == 'patients':
            qs = qs.select_related('user')
        if limit is not None:
            qs = qs[:limit]
        instances = list(qs)
    except (DjangoValidationError, ValueError) as exc:
        raise InvalidInput(f'invalid filter value: {exc}') from exc
    return serialize_rows(table, instances)
