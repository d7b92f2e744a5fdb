"""
Row filters in the ``column=op.value`` notation.

The same filter object is used on three sides: the websocket consumer
drops change events that do not match a subscription's filter, the REST
table endpoint turns filters into queryset lookups, and client-side
live collections use them as row predicates.

Supported operators::

    status=eq.active        status=neq.cancelled
    severity=in.(high,critical)
    room_number=is.null     is_read=is.false
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

OPERATORS = ('eq', 'neq', 'in', 'is')
IS_VALUES = {'null': None, 'true': True, 'false': False}


class InvalidFilter(ValueError):
    pass


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


@dataclass(frozen=True)
class RowFilter:
    column: str
    op: str
    value: Any

    @classmethod
    def parse(cls, text: str) -> 'RowFilter':
        column, sep, rest = (text or '').partition('=')
        if not sep:
            raise InvalidFilter(f'filter must look like column=op.value: {text!r}')
        return cls.from_param(column, rest)

    @classmethod
    def from_param(cls, column: str, expr: str) -> 'RowFilter':
        column = column.strip()
        op, sep, raw = (expr or '').partition('.')
        if not column or not column.replace('_', '').isalnum():
            raise InvalidFilter(f'invalid column: {column!r}')
        if not sep or op not in OPERATORS:
            raise InvalidFilter(f'unsupported operator in {expr!r}')
        if op == 'in':
            if not (raw.startswith('(') and raw.endswith(')')):
                raise InvalidFilter('in() values must be parenthesised')
            values = tuple(v.strip() for v in raw[1:-1].split(',') if v.strip())
            return cls(column, op, values)
        if op == 'is':
            if raw not in IS_VALUES:
                raise InvalidFilter('is. accepts null, true or false')
            return cls(column, op, IS_VALUES[raw])
        return cls(column, op, raw)

    @classmethod
    def eq(cls, column: str, value: Any) -> 'RowFilter':
        return cls(column, 'eq', _text(value))

    def matches(self, row: Optional[dict]) -> bool:
        if not row or self.column not in row:
            return False
        actual = row[self.column]
        if self.op == 'is':
            return actual is self.value
        if actual is None:
            return False
        if self.op == 'eq':
            return _text(actual) == self.value
        if self.op == 'neq':
            return _text(actual) != self.value
        return _text(actual) in self.value

    def lookup(self) -> tuple[str, Any, bool]:
        """Return ``(lookup, value, negate)`` for a Django queryset filter."""
        if self.op == 'is':
            if self.value is None:
                return f'{self.column}__isnull', True, False
            return self.column, self.value, False
        if self.op == 'in':
            return f'{self.column}__in', list(self.value), False
        value = IS_VALUES[self.value] if self.value in ('true', 'false') else self.value
        return self.column, value, self.op == 'neq'

    def __str__(self) -> str:
        if self.op == 'in':
            return f"{self.column}=in.({','.join(self.value)})"
        if self.op == 'is':
            return f"{self.column}=is.{'null' if self.value is None else _text(self.value)}"
        return f'{self.column}={self.op}.{self.value}'


def match_all(filters: Iterable[RowFilter], row: Optional[dict]) -> bool:
    return all(f.matches(row) for f in filters)
