"""
Data backends for live screens.

A screen needs two things from the backend besides the change feed: a
full snapshot of the rows it shows and a handful of writes.  Both
backends below speak in the row dicts produced by
``core.serializers.rows``, so a snapshot and a reconciled event stream
carry identical rows.

* :class:`OrmBackend` runs the service layer in-process through the
  ORM.  Used by management commands and tests.
* :class:`HttpBackend` talks to the REST API with a bearer token.

Every call is a coroutine; blocking work runs through
``asgiref.sync.sync_to_async`` so the event loop keeps dispatching
change events meanwhile.
"""
from __future__ import annotations

import abc
import logging
from typing import Iterable, Optional

import requests
from asgiref.sync import sync_to_async
from django.db import DatabaseError

from core.exceptions import CareLinkError
from core.live.errors import AuthError, BackendError
from core.live.session import Session
from core.realtime.filters import RowFilter

logger = logging.getLogger(__name__)


class Backend(abc.ABC):
    session: Session

    @abc.abstractmethod
    async def fetch(self, table: str, *, filters: Iterable[RowFilter] = (), order_by: str = 'created_at',
                    limit: Optional[int] = None) -> list[dict]:
        """Return rows of ``table`` matching every filter, newest first."""

    @abc.abstractmethod
    async def can_see(self, table: str, row: dict) -> bool:
        """Whether the session user may see ``row``; gates change-feed events."""

    @abc.abstractmethod
    async def acknowledge_alert(self, alert_id) -> tuple[dict, bool]:
        """Acknowledge an alert; return ``(row, changed)``."""

    @abc.abstractmethod
    async def send_message(self, receiver_id, content: str) -> dict:
        ...

    @abc.abstractmethod
    async def mark_read(self, peer_id) -> int:
        ...

    @abc.abstractmethod
    async def dispense(self, prescription_id) -> dict:
        ...


class OrmBackend(Backend):
    def __init__(self, session: Session):
        self.session = session

    def _user(self):
        from core.models import User

        user = User.objects.filter(id=self.session.user_id, is_active=True).first()
        if user is None:
            raise AuthError('session user no longer exists', status=401, code='not_authenticated')
        return user

    async def _call(self, fn, *args, **kwargs):
        def run():
            try:
                return fn(self._user(), *args, **kwargs)
            except CareLinkError as e:
                raise BackendError(e.message, status=e.status, code=e.code) from e
            except DatabaseError as e:
                logger.exception('database error in %s', getattr(fn, '__name__', fn))
                raise BackendError('backend unavailable', code='database_error') from e

        return await sync_to_async(run, thread_sensitive=True)()

    async def fetch(self, table, *, filters=(), order_by='created_at', limit=None):
        from core.services.tables import select_rows

        return await self._call(select_rows, table, filters=list(filters), order_by=order_by, limit=limit)

    async def can_see(self, table, row):
        from core.services.visibility import can_see_row

        return await self._call(can_see_row, table, row)

    async def acknowledge_alert(self, alert_id):
        from core.serializers.rows import serialize_row
        from core.services.alerts import acknowledge_alert

        def ack(user, alert_id):
            alert, changed = acknowledge_alert(user, alert_id)
            return serialize_row(alert), changed

        return await self._call(ack, alert_id)

    async def send_message(self, receiver_id, content):
        from core.serializers.rows import serialize_row
        from core.services.messages import send_message

        return await self._call(lambda user: serialize_row(send_message(user, receiver_id, content)))

    async def mark_read(self, peer_id):
        from core.services.messages import mark_conversation_read

        return await self._call(mark_conversation_read, peer_id)

    async def dispense(self, prescription_id):
        from core.serializers.rows import serialize_row
        from core.services.prescriptions import dispense

        return await self._call(lambda user: serialize_row(dispense(user, prescription_id)))


class HttpBackend(Backend):
    """REST client for a remote CareLink server.

    ``http`` may be a pre-configured ``requests.Session``; one is created
    otherwise.  Error bodies of the form ``{"ok": false, "error": {...}}``
    are turned into :class:`BackendError` (or :class:`AuthError` for 401).
    """

    def __init__(self, base_url: str, session: Optional[Session] = None, *, timeout: float = 10,
                 http: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.session = session
        self.timeout = timeout
        self.http = http or requests.Session()

    def _request(self, method: str, path: str, *, params=None, json=None) -> dict:
        headers = self.session.auth_header if self.session else {}
        try:
            r = self.http.request(method, self.base_url + path, params=params, json=json,
                                  headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning('%s %s failed: %s', method, path, e)
            raise BackendError('server unreachable', code='network_error') from e
        try:
            body = r.json()
        except ValueError:
            body = {}
        if r.ok:
            return body
        err = body.get('error') if isinstance(body, dict) else None
        if isinstance(err, dict):
            message, code = str(err.get('message') or r.reason), err.get('code')
        else:
            message, code = r.reason or 'request failed', None
        exc_class = AuthError if r.status_code == 401 else BackendError
        raise exc_class(message, status=r.status_code, code=code)

    async def _async(self, method, path, **kwargs) -> dict:
        return await sync_to_async(self._request, thread_sensitive=False)(method, path, **kwargs)

    async def sign_in(self, email: str, password: str) -> Session:
        try:
            body = await self._async('POST', '/auth/signin', json={'email': email, 'password': password})
        except BackendError as e:
            if e.status == 400:
                raise AuthError(e.message, status=e.status, code=e.code) from e
            raise
        self.session = Session.from_auth_payload(body)
        return self.session

    async def sign_up(self, email: str, password: str, full_name: str) -> Session:
        body = await self._async('POST', '/auth/signup',
                                 json={'email': email, 'password': password, 'full_name': full_name})
        self.session = Session.from_auth_payload(body)
        return self.session

    async def fetch(self, table, *, filters=(), order_by='created_at', limit=None):
        params = [(f.column, str(f).partition('=')[2]) for f in filters]
        params.append(('order', f'{order_by}.desc'))
        if limit is not None:
            params.append(('limit', str(limit)))
        body = await self._async('GET', f'/api/rows/{table}', params=params)
        return body.get('rows', [])

    async def can_see(self, table, row):
        # the rows endpoint applies the same visibility as the feed consumer
        rows = await self.fetch(table, filters=[RowFilter.eq('id', row.get('id'))], order_by='id', limit=1)
        return bool(rows)

    async def acknowledge_alert(self, alert_id):
        body = await self._async('POST', f'/api/alerts/{alert_id}/acknowledge')
        return body['row'], bool(body.get('changed'))

    async def send_message(self, receiver_id, content):
        body = await self._async('POST', '/api/messages', json={'receiver_id': str(receiver_id), 'content': content})
        return body['row']

    async def mark_read(self, peer_id):
        body = await self._async('POST', '/api/messages/read', json={'peer_id': str(peer_id)})
        return int(body.get('updated', 0))

    async def dispense(self, prescription_id):
        body = await self._async('POST', f'/api/prescriptions/{prescription_id}/dispense')
        return body['row']
