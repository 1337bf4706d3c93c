"""
WSGI entrypoint for the hospital management backend.

HTTP-only deployments (gunicorn, uwsgi) load ``application`` from here;
WebSocket updates need the ASGI entrypoint in ``hospital.asgi``.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hospital.settings')

application = get_wsgi_application()
