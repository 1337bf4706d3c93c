"""
ASGI entrypoint for the hospital management backend.

Serves HTTP through Django and the ``ws/updates/`` WebSocket through
Channels.  Settings must be configured before any Django import.
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "hospital.settings")

import django  # noqa: E402
django.setup()  # noqa: E402

from django.core.asgi import get_asgi_application  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.auth import AuthMiddlewareStack  # noqa: E402
from django.urls import path  # noqa: E402

from hms.realtime.consumers import UpdatesConsumer  # noqa: E402

django_asgi_app = get_asgi_application()

websocket_urlpatterns = [
    path("ws/updates/", UpdatesConsumer.as_asgi()),
]

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AuthMiddlewareStack(URLRouter(websocket_urlpatterns)),
})
