"""Audit trail writer used by every module.

``log_action`` records an :class:`~hms.models.AuditLog` row and mirrors
it to the ``hms.audit`` logger.  It never raises: a failed audit write
is logged and the calling operation carries on.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from django.contrib.auth import get_user_model
from django.db import transaction

from hms.models import AuditLog

User = get_user_model()
logger = logging.getLogger('hms.audit')


def _client_ip(request) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def log_action(*, user, action: str, resource: str, resource_id: Any = None,
               details: Optional[Dict[str, Any]] = None, flags: Optional[Iterable[str]] = None,
               request=None, success: bool = True) -> Optional[AuditLog]:
    if user is not None and not getattr(user, 'is_authenticated', False):
        user = None
    try:
        # savepoint, so a failed insert leaves the caller's transaction usable
        with transaction.atomic():
            entry = AuditLog.objects.create(
                user=user if isinstance(user, User) else None,
                action=action,
                resource=resource,
                resource_id='' if resource_id is None else str(resource_id),
                ip_address=_client_ip(request),
                user_agent=(request.META.get('HTTP_USER_AGENT', '')[:255] if request is not None else ''),
                details=details or {},
                compliance_flags=list(flags or []),
                success=success,
            )
    except Exception:
        logger.exception('Failed to log audit event %s on %s:%s', action, resource, resource_id)
        return None
    logger.info('AUDIT: %s performed %s on %s:%s flags=%s',
                getattr(user, 'username', 'anonymous'), action, resource, entry.resource_id,
                ','.join(entry.compliance_flags))
    return entry
