"""
API error types and the project-wide DRF exception handler.

Services raise ``NotFound`` (404), ``ValidationError`` (400),
``PermissionDenied`` (403) or :class:`Conflict` (409); the handler turns
every one of them into ``{'ok': False, 'error': {'code', 'message'}}``.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class Conflict(APIException):
    """Uniqueness violation such as a duplicate email or license number."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource already exists.'
    default_code = 'conflict'


def _message(data):
    if isinstance(data, dict):
        if 'detail' in data:
            return _message(data['detail'])
        return {k: _message(v) for k, v in data.items()}
    if isinstance(data, list):
        if len(data) == 1:
            return _message(data[0])
        return [_message(v) for v in data]
    return str(data)


def _code(exc) -> str:
    if isinstance(exc, APIException):
        codes = exc.get_codes()
        if isinstance(codes, str):
            return codes
        # field errors from serializers
        return exc.default_code
    return 'api_error'


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('Unhandled error in %s', getattr(view, '__name__', view))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    return Response(
        {'ok': False, 'error': {'code': _code(exc), 'message': _message(resp.data)}},
        status=resp.status_code,
        headers={k: resp[k] for k in ('WWW-Authenticate', 'Retry-After') if k in resp},
    )
