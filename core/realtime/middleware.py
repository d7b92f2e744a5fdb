"""
Websocket authentication from a ``?token=<access>`` query parameter.

Browsers cannot set an ``Authorization`` header on a websocket upgrade,
so the access token issued by ``/auth/signin`` travels in the query
string instead.  Invalid or missing tokens leave an ``AnonymousUser``
in the scope; the consumer decides what to do with it.
"""
from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from core.models import User

logger = logging.getLogger(__name__)


@database_sync_to_async
def _user_for_token(raw: str):
    try:
        token = AccessToken(raw)
    except TokenError as exc:
        logger.info('rejected websocket token: %s', exc)
        return AnonymousUser()
    return User.objects.filter(id=token.get('user_id'), is_active=True).first() or AnonymousUser()


class JWTAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        query = parse_qs((scope.get('query_string') or b'').decode())
        raw = (query.get('token') or [''])[0]
        scope = dict(scope)
        scope['user'] = await _user_for_token(raw) if raw else AnonymousUser()
        return await super().__call__(scope, receive, send)
