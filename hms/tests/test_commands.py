from datetime import timedelta
from io import StringIO

import pytest
from django.core.cache import cache
from django.core.management import CommandError, call_command
from django.test import override_settings
from django.utils import timezone

from hms.models import (
    Bill, BloodUnit, DataRetentionLog, LabTest, Medication, Patient, StaffMember, User,
)
from hms.services import dashboard
from hms.tests.factories import make_patient, make_unit

pytestmark = pytest.mark.django_db


def run(name, *args):
    out = StringIO()
    call_command(name, *args, stdout=out)
    return out.getvalue()


def test_refresh_caches_warms_stats(monkeypatch):
    sent = []
    monkeypatch.setattr('hms.management.commands.refresh_caches.broadcast',
                        lambda event, **payload: sent.append((event, payload)))
    out = run('refresh_caches')
    assert 'Refreshed 5 keys' in out
    assert cache.get(dashboard.CACHE_KEY) is not None
    assert cache.get('stats:pharmacy')['ok'] is True
    assert sent[0][0] == 'broadcast.refresh'
    assert dashboard.CACHE_KEY in sent[0][1]['keys']

    sent.clear()
    run('refresh_caches', '--no-broadcast')
    assert sent == []


@override_settings(ENCRYPTION_KEY='')
def test_run_compliance_checks_can_fail_the_run():
    out = run('run_compliance_checks')
    assert 'NON_COMPLIANT' in out
    with pytest.raises(CommandError):
        run('run_compliance_checks', '--fail-on-noncompliant')


def test_expire_blood_units():
    make_unit(expiry_date=timezone.now() - timedelta(days=1))
    make_unit()
    out = run('expire_blood_units')
    assert 'Expired 1 blood units' in out
    assert BloodUnit.objects.filter(status='EXPIRED').count() == 1
    # one available O+ unit is under the low stock threshold
    assert 'Low stock: O+' in out


def test_apply_retention():
    out = run('apply_retention')
    assert 'lab_tests: 0 past retention' in out
    assert DataRetentionLog.objects.count() == 4


def test_mark_overdue_bills():
    patient = make_patient()
    Bill.objects.create(patient=patient, bill_number='BILL2020010001', due_date=timezone.localdate() - timedelta(days=1))
    assert 'Marked 1 bills overdue' in run('mark_overdue_bills')
    assert Bill.objects.get().status == 'OVERDUE'


def test_ensure_test_users_is_idempotent():
    run('ensure_test_users', '--password', 'Another#2024')
    user = User.objects.get(username='labtech1')
    user.role = 'patient'
    user.is_active = False
    user.save()
    run('ensure_test_users', '--password', 'Another#2024')
    user.refresh_from_db()
    assert user.role == 'lab_technician'
    assert user.is_active
    assert user.check_password('Another#2024')
    assert User.objects.filter(username__in=['super1', 'patient1']).count() == 2


def test_populate_data():
    run('populate_data')
    assert Patient.objects.count() == 5
    assert StaffMember.objects.filter(staff_type='DOCTOR').count() == 3
    assert LabTest.objects.count() == 3
    assert Medication.objects.count() == 3
    assert Bill.objects.count() == 2
    assert BloodUnit.objects.count() == 4
