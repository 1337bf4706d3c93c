from datetime import timedelta
from decimal import Decimal

import pytest
from django.test import override_settings
from django.utils import timezone

from hms.models import AuditLog, ComplianceCheck, DataRetentionLog, LabTest
from hms.services import compliance
from hms.services.audit import log_action
from hms.tests.factories import make_lab_test

pytestmark = pytest.mark.django_db

KEY = '0' * 64


@pytest.fixture
def admin(client_for):
    return client_for('admin')


def test_non_admins_are_refused(client_for):
    doctor = client_for('doctor')
    for url in ('/api/v1/compliance/checks', '/api/v1/compliance/report', '/api/v1/compliance/audit-logs'):
        assert doctor.get(url).status_code == 403


@override_settings(ENCRYPTION_KEY='')
def test_missing_encryption_key_is_critical(admin):
    r = admin.get('/api/v1/compliance/report')
    data = r.data['data']
    assert data['overallStatus'] == 'NON_COMPLIANT'
    check = next(c for c in data['checks'] if c['id'] == 'hipaa-encryption')
    assert check['status'] == 'FAIL'
    assert check['severity'] == 'CRITICAL'
    assert check['recommendations']
    assert data['summary']['critical'] >= 1
    assert AuditLog.objects.filter(action='COMPLIANCE_REPORT_GENERATED').exists()


@override_settings(ENCRYPTION_KEY=KEY, BACKUP_ENCRYPTION_KEY=KEY)
def test_run_checks_stores_one_row_per_check(admin):
    r = admin.post('/api/v1/compliance/checks')
    assert r.status_code == 200
    assert r.data['data']['summary']['total'] == len(compliance.CHECKS)
    assert r.data['data']['summary']['failed'] == 0
    admin.post('/api/v1/compliance/checks')
    assert ComplianceCheck.objects.count() == len(compliance.CHECKS)

    stored = admin.get('/api/v1/compliance/checks').data['data']
    assert {c['id'] for c in stored} >= {'hipaa-encryption', 'gdpr-data-retention', 'security-password-policy'}
    passed = next(c for c in stored if c['id'] == 'hipaa-encryption')
    assert passed['status'] == 'PASS'
    assert passed['severity'] == 'LOW'
    assert passed['recommendations'] == []


def test_overall_status():
    base = {'total': 5, 'passed': 5, 'failed': 0, 'warnings': 0, 'critical': 0}
    assert compliance.overall_status(base) == 'COMPLIANT'
    assert compliance.overall_status({**base, 'warnings': 3}) == 'AT_RISK'
    assert compliance.overall_status({**base, 'warnings': 2}) == 'COMPLIANT'
    assert compliance.overall_status({**base, 'failed': 1}) == 'NON_COMPLIANT'


def test_retention_counts_without_deleting(admin):
    old = make_lab_test()
    LabTest.objects.filter(id=old.id).update(ordered_date=timezone.now() - timedelta(days=2600))
    make_lab_test()

    policies = admin.get('/api/v1/compliance/retention/policies').data['data']
    assert {p['tableName'] for p in policies} == set(compliance.RETENTION_TARGETS)

    r = admin.post('/api/v1/compliance/retention/execute')
    assert r.data['data']['lab_tests']['eligible'] == 1
    assert r.data['data']['lab_tests']['deleted'] == 0
    assert LabTest.objects.filter(id=old.id).exists()
    assert DataRetentionLog.objects.count() == len(policies)

    logs = admin.get('/api/v1/compliance/retention/logs').data
    assert logs['pagination']['total'] == len(policies)
    assert logs['data'][0]['executedBy'] == admin.user.id


def test_audit_logs_record_and_query(admin):
    r = admin.post('/api/v1/compliance/audit-logs',
                   {'action': 'RECORD_EXPORTED', 'resource': 'patient', 'resourceId': '12',
                    'complianceFlags': ['HIPAA', 'PHI_EXPORT']}, format='json')
    assert r.status_code == 201
    assert r.data['data']['action'] == 'RECORD_EXPORTED'
    assert r.data['data']['userId'] == admin.user.id
    admin.post('/api/v1/compliance/audit-logs',
               {'action': 'SETTINGS_VIEWED', 'resource': 'system', 'success': False}, format='json')

    data = admin.get('/api/v1/compliance/audit-logs', {'flags': 'PHI_EXPORT'}).data['data']
    assert data['total'] == 1
    assert data['logs'][0]['resourceId'] == '12'

    data = admin.get('/api/v1/compliance/audit-logs', {'resource': 'system'}).data['data']
    assert data['logs'][0]['success'] is False
    assert data['summary']['uniqueUsers'] == 1

    assert admin.post('/api/v1/compliance/audit-logs', {'resource': 'x'}, format='json').status_code == 400


def test_failed_audit_write_leaves_transaction_usable():
    # Decimal is not JSON serialisable; the insert fails inside its own savepoint
    entry = log_action(user=None, action='BROKEN', resource='bill', details={'amount': Decimal('1.50')})
    assert entry is None
    assert AuditLog.objects.filter(action='BROKEN').count() == 0
    assert log_action(user=None, action='AFTER', resource='bill') is not None
