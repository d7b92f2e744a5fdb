"""
WSGI config for the carelink project.

Serves the HTTP API only; the realtime change feed requires the ASGI
entrypoint in ``carelink.asgi``.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'carelink.settings')

application = get_wsgi_application()
