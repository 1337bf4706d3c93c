"""
URL configuration for the hospital management backend.

The API itself lives in ``hms.routers`` and is mounted under the
``api/v1/`` prefix.  OpenAPI documentation is exposed at ``/swagger/``
and ``/redoc/``; health and Prometheus metrics sit at the root.
"""
from django.contrib import admin
from django.urls import path, include

from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

from hms.views import health

api_info = openapi.Info(
    title="Hospital Management API",
    default_version='v1',
    description="Patients, appointments, laboratory, radiology, blood bank, pharmacy, billing, staff and compliance.",
)

schema_view = get_schema_view(
    api_info,
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('healthz', health.healthz),
    path('metrics', include('django_prometheus.urls')),
    path('api/v1/', include('hms.routers')),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
]
