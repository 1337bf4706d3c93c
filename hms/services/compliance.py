"""
HIPAA, GDPR and general security compliance checks, data retention and
audit-log queries.

Check results are stored in :class:`~hms.models.ComplianceCheck`, one row
per check id, and overwritten on every run.
"""
import logging
from datetime import timedelta

from django.apps import apps
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Max, Min, Q
from django.utils import timezone

from hms.models import AuditLog, Bill, ComplianceCheck, DataRetentionLog, LabTest, Prescription, RadiologyTest
from hms.permissions import ADMIN_ROLES
from hms.services.audit import log_action
from hms.services.common import iso

User = get_user_model()
logger = logging.getLogger(__name__)

DAILY, WEEKLY, MONTHLY, QUARTERLY = 1, 7, 30, 90
INACTIVE_ADMIN_DAYS = 90

RETENTION_POLICIES = [
    {'tableName': 'lab_tests', 'retentionPeriod': 2555, 'dataCategory': 'PATIENT_DATA', 'autoDelete': False,
     'description': 'Laboratory test results retained for 7 years'},
    {'tableName': 'radiology_tests', 'retentionPeriod': 2555, 'dataCategory': 'PATIENT_DATA', 'autoDelete': False,
     'description': 'Radiology studies and reports retained for 7 years'},
    {'tableName': 'bills', 'retentionPeriod': 2555, 'dataCategory': 'FINANCIAL', 'autoDelete': False,
     'description': 'Financial records retained for 7 years'},
    {'tableName': 'prescriptions', 'retentionPeriod': 1825, 'dataCategory': 'PATIENT_DATA', 'autoDelete': False,
     'description': 'Prescriptions retained for 5 years'},
]
# table -> (model, date field the retention period counts from)
RETENTION_TARGETS = {
    'lab_tests': (LabTest, 'ordered_date'),
    'radiology_tests': (RadiologyTest, 'ordered_date'),
    'bills': (Bill, 'created_at'),
    'prescriptions': (Prescription, 'prescribed_date'),
}


def _check(check_id, name, description, category, passed, *, fail_status='FAIL', fail_severity='HIGH',
           details_ok='', details_bad='', recommendations=(), interval=MONTHLY) -> dict:
    now = timezone.now()
    return {
        'id': check_id,
        'name': name,
        'description': description,
        'category': category,
        'status': 'PASS' if passed else fail_status,
        'severity': 'LOW' if passed else fail_severity,
        'details': details_ok if passed else details_bad,
        'recommendations': [] if passed else list(recommendations),
        'lastChecked': now,
        'nextCheck': now + timedelta(days=interval),
    }


# -- HIPAA --------------------------------------------------------------------
def check_encryption() -> dict:
    return _check(
        'hipaa-encryption', 'Data Encryption', 'Verify that sensitive data is properly encrypted', 'HIPAA',
        bool(settings.ENCRYPTION_KEY), fail_severity='CRITICAL',
        details_ok='Encryption key is configured',
        details_bad='Encryption key not configured in environment variables',
        recommendations=['Configure ENCRYPTION_KEY environment variable',
                         'Ensure all PHI data is encrypted at rest and in transit',
                         'Implement proper key rotation policies'],
        interval=DAILY)


def check_access_control() -> dict:
    auth = settings.REST_FRAMEWORK.get('DEFAULT_AUTHENTICATION_CLASSES', [])
    return _check(
        'hipaa-access-control', 'Access Controls', 'Verify role-based access controls are implemented', 'HIPAA',
        bool(auth), fail_severity='CRITICAL',
        details_ok='Token authentication and role-based permissions are enforced',
        details_bad='No API authentication classes configured',
        recommendations=['Configure DEFAULT_AUTHENTICATION_CLASSES', 'Review role permissions regularly'],
        interval=WEEKLY)


def check_audit_logging() -> dict:
    recent = AuditLog.objects.filter(timestamp__gte=timezone.now() - timedelta(days=30)).exists()
    return _check(
        'hipaa-audit-logging', 'Audit Logging', 'Verify audit trails for sensitive operations', 'HIPAA',
        recent, fail_status='WARNING',
        details_ok='Audit events recorded in the last 30 days',
        details_bad='No audit events recorded in the last 30 days',
        recommendations=['Log all access to PHI data', 'Review audit logs regularly'],
        interval=DAILY)


def check_backup_security() -> dict:
    return _check(
        'hipaa-backup-security', 'Backup Security', 'Verify backups are encrypted and secure', 'HIPAA',
        bool(settings.BACKUP_ENCRYPTION_KEY), fail_status='WARNING', fail_severity='MEDIUM',
        details_ok='Backup encryption is configured',
        details_bad='Backup encryption not configured',
        recommendations=['Configure backup encryption', 'Implement secure backup storage',
                         'Regular backup integrity checks'],
        interval=WEEKLY)


def check_phi_handling() -> dict:
    from hms.models import Patient
    from hms.services.encryption import PHICrypto
    plain = sum(
        1 for info in Patient.objects.exclude(insurance_info={}).values_list('insurance_info', flat=True)
        if info.get('policyNumber') and not PHICrypto.is_encrypted(info['policyNumber'])
    )
    return _check(
        'hipaa-phi-handling', 'PHI Data Handling', 'Verify proper handling of Protected Health Information',
        'HIPAA', plain == 0, fail_status='WARNING',
        details_ok='Insurance policy numbers are stored encrypted',
        details_bad=f'{plain} patient records hold unencrypted policy numbers',
        recommendations=['Re-save affected patients to encrypt policy numbers', 'Train staff on PHI handling'],
        interval=MONTHLY)


# -- GDPR ---------------------------------------------------------------------
def check_data_subject_rights() -> dict:
    return _check(
        'gdpr-data-subject-rights', 'Data Subject Rights', 'Verify GDPR data subject rights are implemented',
        'GDPR', True, fail_severity='CRITICAL',
        details_ok='Patients can read and update their own records and medical summary')


def check_consent() -> dict:
    return _check(
        'gdpr-consent-management', 'Consent Management', 'Verify consent management for data processing',
        'GDPR', True, fail_status='WARNING',
        details_ok='Registration records the registration channel for each patient')


def check_data_minimization() -> dict:
    return _check(
        'gdpr-data-minimization', 'Data Minimization', 'Verify data minimization principles are followed',
        'GDPR', True, fail_status='WARNING', fail_severity='MEDIUM',
        details_ok='Data collection follows minimization principles', interval=QUARTERLY)


def check_data_retention() -> dict:
    n = len(RETENTION_POLICIES)
    return _check(
        'gdpr-data-retention', 'Data Retention', 'Verify data retention policies are implemented', 'GDPR',
        n > 0,
        details_ok=f'{n} retention policies configured',
        details_bad='Data retention policies not configured',
        recommendations=['Define data retention schedules', 'Document retention policies'])


def check_breach_notification() -> dict:
    return _check(
        'gdpr-breach-notification', 'Breach Notification', 'Verify breach notification procedures are in place',
        'GDPR', bool(settings.LOGGING.get('loggers', {}).get('hms.audit')), fail_status='WARNING',
        details_ok='Security events are routed to the audit logger',
        details_bad='No audit logger configured for incident reporting',
        recommendations=['Configure the hms.audit logger', 'Establish incident response procedures'])


# -- general security ---------------------------------------------------------
def check_password_policy() -> dict:
    validators = settings.AUTH_PASSWORD_VALIDATORS
    return _check(
        'security-password-policy', 'Password Policies', 'Verify password policy compliance', 'GENERAL',
        len(validators) >= 3, fail_status='WARNING', fail_severity='MEDIUM',
        details_ok=f'{len(validators)} password validators configured',
        details_bad=f'Only {len(validators)} password validators configured',
        recommendations=['Enable minimum length, common password and numeric validators'])


def check_token_blacklist() -> dict:
    enabled = apps.is_installed('rest_framework_simplejwt.token_blacklist')
    return _check(
        'security-token-blacklist', 'Token Revocation', 'Verify refresh tokens can be revoked on logout',
        'GENERAL', enabled, fail_status='WARNING', fail_severity='MEDIUM',
        details_ok='Refresh token blacklist is enabled',
        details_bad='Refresh token blacklist app not installed',
        recommendations=['Add rest_framework_simplejwt.token_blacklist to INSTALLED_APPS'],
        interval=WEEKLY)


def check_inactive_admins() -> dict:
    cutoff = timezone.now() - timedelta(days=INACTIVE_ADMIN_DAYS)
    stale = User.objects.filter(role__in=ADMIN_ROLES, is_active=True).filter(
        Q(last_login__lt=cutoff) | Q(last_login__isnull=True)).count()
    return _check(
        'security-inactive-admins', 'Inactive Privileged Accounts',
        'Verify administrator accounts are in active use', 'GENERAL',
        stale == 0, fail_status='WARNING', fail_severity='MEDIUM',
        details_ok='All active administrator accounts logged in within 90 days',
        details_bad=f'{stale} administrator accounts have not logged in for {INACTIVE_ADMIN_DAYS} days',
        recommendations=['Deactivate unused administrator accounts'],
        interval=WEEKLY)


CHECKS = [
    check_encryption, check_access_control, check_audit_logging, check_backup_security, check_phi_handling,
    check_data_subject_rights, check_consent, check_data_minimization, check_data_retention,
    check_breach_notification,
    check_password_policy, check_token_blacklist, check_inactive_admins,
]


def format_check(c) -> dict:
    if isinstance(c, dict):
        return {**c, 'lastChecked': iso(c['lastChecked']), 'nextCheck': iso(c['nextCheck'])}
    return {
        'id': c.check_id,
        'name': c.name,
        'description': c.description,
        'category': c.category,
        'status': c.status,
        'severity': c.severity,
        'details': c.details,
        'recommendations': c.recommendations,
        'lastChecked': iso(c.last_checked),
        'nextCheck': iso(c.next_check),
    }


def run_checks() -> list[dict]:
    results = [check() for check in CHECKS]
    with transaction.atomic():
        for r in results:
            ComplianceCheck.objects.update_or_create(
                check_id=r['id'],
                defaults={
                    'name': r['name'],
                    'description': r['description'],
                    'category': r['category'],
                    'status': r['status'],
                    'severity': r['severity'],
                    'details': r['details'],
                    'recommendations': r['recommendations'],
                    'last_checked': r['lastChecked'],
                    'next_check': r['nextCheck'],
                },
            )
    for r in results:
        if r['status'] == 'FAIL':
            logger.error('Compliance check %s failed: %s', r['id'], r['details'])
        elif r['status'] == 'WARNING':
            logger.warning('Compliance check %s: %s', r['id'], r['details'])
    return results


def summarize(results: list[dict]) -> dict:
    summary = {'total': len(results), 'passed': 0, 'failed': 0, 'warnings': 0, 'critical': 0}
    for r in results:
        if r['status'] == 'PASS':
            summary['passed'] += 1
        elif r['status'] == 'FAIL':
            summary['failed'] += 1
            if r['severity'] == 'CRITICAL':
                summary['critical'] += 1
        else:
            summary['warnings'] += 1
    return summary


def overall_status(summary: dict) -> str:
    if summary['failed'] > 0:
        return 'NON_COMPLIANT'
    if summary['warnings'] > 2:
        return 'AT_RISK'
    return 'COMPLIANT'


def report(actor=None, *, request=None) -> dict:
    results = run_checks()
    summary = summarize(results)
    status = overall_status(summary)
    log_action(user=actor, action='COMPLIANCE_REPORT_GENERATED', resource='compliance',
               details={'status': status, **summary}, flags=['HIPAA', 'GDPR'], request=request)
    return {
        'generatedAt': iso(timezone.now()),
        'overallStatus': status,
        'summary': summary,
        'checks': [format_check(r) for r in results],
    }


def stored_checks() -> list[ComplianceCheck]:
    return list(ComplianceCheck.objects.order_by('category', 'check_id'))


# -- retention ----------------------------------------------------------------
def retention_policies() -> list[dict]:
    return [dict(p) for p in RETENTION_POLICIES]


def execute_retention(actor=None, *, request=None) -> dict:
    """Count records past each policy's retention period.

    Records are deleted only for policies with ``autoDelete``; each policy
    run writes one :class:`~hms.models.DataRetentionLog` row.
    """
    now = timezone.now()
    results = {}
    for policy in RETENTION_POLICIES:
        table = policy['tableName']
        model, field = RETENTION_TARGETS[table]
        cutoff = now - timedelta(days=policy['retentionPeriod'])
        expired = model.objects.filter(**{f'{field}__lt': cutoff})
        eligible = expired.count()
        deleted = 0
        if policy['autoDelete'] and eligible:
            deleted, _ = expired.delete()
        DataRetentionLog.objects.create(
            table_name=table,
            data_category=policy['dataCategory'],
            retention_days=policy['retentionPeriod'],
            cutoff_date=cutoff,
            eligible_records=eligible,
            deleted_records=deleted,
            executed_by=actor if getattr(actor, 'is_authenticated', False) else None,
        )
        results[table] = {'eligible': eligible, 'deleted': deleted, 'cutoffDate': iso(cutoff)}
        if eligible:
            logger.info('Retention %s: %d records past %s, %d deleted', table, eligible, cutoff.date(), deleted)
    log_action(user=actor, action='DATA_RETENTION_EXECUTED', resource='compliance', details=results,
               flags=['GDPR', 'DATA_RETENTION'], request=request)
    return results


def format_retention_log(r: DataRetentionLog) -> dict:
    return {
        'id': r.id,
        'tableName': r.table_name,
        'dataCategory': r.data_category,
        'retentionDays': r.retention_days,
        'cutoffDate': iso(r.cutoff_date),
        'eligibleRecords': r.eligible_records,
        'deletedRecords': r.deleted_records,
        'executedBy': r.executed_by_id,
        'executedAt': iso(r.executed_at),
    }


# -- audit log ----------------------------------------------------------------
def format_audit(a: AuditLog) -> dict:
    return {
        'id': a.id,
        'userId': a.user_id,
        'action': a.action,
        'resource': a.resource,
        'resourceId': a.resource_id or None,
        'ipAddress': a.ip_address,
        'userAgent': a.user_agent,
        'details': a.details,
        'complianceFlags': a.compliance_flags,
        'success': a.success,
        'timestamp': iso(a.timestamp),
    }


def query_audit_logs(params: dict) -> dict:
    qs = AuditLog.objects.all()
    if params.get('userId'):
        qs = qs.filter(user_id=params['userId'])
    if params.get('action'):
        qs = qs.filter(action=params['action'])
    if params.get('resource'):
        qs = qs.filter(resource=params['resource'])
    if params.get('dateFrom'):
        qs = qs.filter(timestamp__date__gte=params['dateFrom'])
    if params.get('dateTo'):
        qs = qs.filter(timestamp__date__lte=params['dateTo'])
    flags = params.get('flags') or []
    if flags:
        # JSON containment lookups are not available on every backend
        wanted = set(flags)
        ids = [pk for pk, f in qs.values_list('id', 'compliance_flags') if wanted & set(f or [])]
        qs = qs.filter(id__in=ids)

    total = qs.count()
    limit = params.get('limit') or 100
    offset = params.get('offset') or 0
    span = qs.aggregate(start=Min('timestamp'), end=Max('timestamp'))
    return {
        'logs': [format_audit(a) for a in qs[offset:offset + limit]],
        'total': total,
        'summary': {
            'totalActions': total,
            'uniqueUsers': qs.exclude(user__isnull=True).order_by().values('user_id').distinct().count(),
            'dateRange': {'start': iso(span['start']), 'end': iso(span['end'])},
        },
    }
