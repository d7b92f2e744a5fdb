"""
Bearer token authentication for the REST API.

Access tokens are JWTs issued by ``djangorestframework-simplejwt``.
This module is kept free of view imports so Django REST framework can
load it while initialising without circular imports.
"""
from __future__ import annotations

from rest_framework_simplejwt.authentication import JWTAuthentication


class BearerAuthentication(JWTAuthentication):
    """JWT authentication under the ``carelink`` realm.

    simplejwt already rejects inactive users on lookup, so the only
    difference is the realm sent in ``WWW-Authenticate``.
    """

    www_authenticate_realm = 'carelink'
