import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def healthz(request):
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
    except DatabaseError:
        logger.exception('Health check: database unavailable')
        return JsonResponse({'ok': False, 'database': 'unavailable'}, status=503)
    return JsonResponse({'ok': True, 'database': 'ok'})
