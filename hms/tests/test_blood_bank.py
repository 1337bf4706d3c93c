from datetime import timedelta

import pytest
from django.db.models.query import QuerySet
from django.utils import timezone

from hms.models import BloodDonation, BloodUnit
from hms.services import blood_bank
from hms.tests.factories import make_donor, make_unit

pytestmark = pytest.mark.django_db


@pytest.fixture
def bank(client_for):
    return client_for('lab_technician')


def donate(client, donor, quantity=450, **extra):
    return client.post('/api/v1/blood-bank/donations', {'donorId': donor.id, 'quantityMl': quantity, **extra},
                       format='json')


def test_register_donor_and_duplicate_phone(bank):
    body = {'firstName': 'Ann', 'lastName': 'Giver', 'dateOfBirth': '1990-04-02', 'gender': 'FEMALE',
            'bloodType': 'A-', 'phone': '+15550100', 'email': 'Ann@Example.test'}
    r = bank.post('/api/v1/blood-bank/donors', body, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['donorNumber'].startswith(f'D{timezone.now():%Y}')
    assert data['email'] == 'ann@example.test'
    assert data['nextEligibleDate'] is None

    r = bank.post('/api/v1/blood-bank/donors', {**body, 'email': ''}, format='json')
    assert r.status_code == 409


def test_donation_creates_available_unit(bank):
    donor = make_donor(blood_type='B+')
    r = donate(bank, donor, component='PLATELETS', hemoglobin='13.5')
    assert r.status_code == 201
    unit = r.data['data']['unit']
    assert unit['status'] == 'AVAILABLE'
    assert unit['bloodType'] == 'B+'
    assert unit['component'] == 'PLATELETS'
    assert unit['unitNumber'].startswith(f'BU{timezone.now():%Y%m%d}')
    stored = BloodUnit.objects.get(id=unit['id'])
    assert (stored.expiry_date - stored.collection_date).days == 5

    donor.refresh_from_db()
    assert donor.total_donations == 1
    assert donor.last_donation_date is not None


def test_56_day_donation_interval(bank):
    donor = make_donor()
    assert donate(bank, donor).status_code == 201
    r = donate(bank, donor)
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Donor is not eligible for donation yet'

    # move the previous donation back past the interval
    past = timezone.now() - timedelta(days=57)
    BloodDonation.objects.filter(donor=donor).update(donation_date=past)
    donor.last_donation_date = past
    donor.save()
    assert donate(bank, donor).status_code == 201


@pytest.mark.parametrize('days_ago,status', [(55, 400), (56, 201)])
def test_donation_interval_boundary(bank, days_ago, status):
    donor = make_donor()
    past = timezone.now() - timedelta(days=days_ago)
    BloodDonation.objects.create(donor=donor, donation_date=past, blood_type=donor.blood_type, quantity_ml=450)
    donor.last_donation_date = past
    donor.save()
    assert donate(bank, donor).status_code == status


@pytest.mark.parametrize('quantity,status', [(99, 400), (100, 201), (500, 201), (501, 400)])
def test_donation_quantity_bounds(bank, quantity, status):
    assert donate(bank, make_donor(), quantity=quantity).status_code == status


def test_ineligible_donor(bank):
    r = donate(bank, make_donor(is_eligible=False))
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Donor is marked as ineligible'


def test_donor_eligibility_filter(bank):
    fresh = make_donor()
    recent = make_donor(last_donation_date=timezone.now() - timedelta(days=10))
    r = bank.get('/api/v1/blood-bank/donors', {'eligible': 'true'})
    assert [d['id'] for d in r.data['data']] == [fresh.id]
    r = bank.get('/api/v1/blood-bank/donors', {'eligible': 'false'})
    assert [d['id'] for d in r.data['data']] == [recent.id]
    r = bank.get('/api/v1/blood-bank/donors')
    assert r.data['pagination']['total'] == 2


def test_inventory_ignores_expired_and_issued(bank):
    make_unit('AB-')
    make_unit('AB-', component='PLASMA')
    make_unit('AB-', status='ISSUED')
    make_unit('AB-', expiry_date=timezone.now() - timedelta(hours=1))
    r = bank.get('/api/v1/blood-bank/inventory')
    by_type = r.data['data']['byBloodType']
    assert by_type['AB-'] == {'total': 2, 'WHOLE_BLOOD': 1, 'PLASMA': 1}
    assert r.data['data']['totalAvailable'] == 2

    r = bank.get('/api/v1/blood-bank/inventory/ab-')
    assert r.data['pagination']['total'] == 2
    assert bank.get('/api/v1/blood-bank/inventory/Q').status_code == 400


def test_crossmatch_and_issue(bank, patient, monkeypatch):
    sent = []
    monkeypatch.setattr('hms.services.blood_bank.broadcast', lambda kind, **kw: sent.append((kind, kw)))
    unit = make_unit('O-')

    r = bank.post('/api/v1/blood-bank/crossmatches', {'patientId': patient.id, 'bloodUnitId': unit.id}, format='json')
    assert r.status_code == 201
    cm_id = r.data['data']['id']
    assert r.data['data']['result'] is None
    assert [c['id'] for c in bank.get('/api/v1/blood-bank/crossmatches').data['data']] == [cm_id]

    r = bank.post(f'/api/v1/blood-bank/crossmatches/{cm_id}/result', {'result': 'COMPATIBLE'}, format='json')
    assert r.data['data']['result'] == 'COMPATIBLE'
    r = bank.post(f'/api/v1/blood-bank/crossmatches/{cm_id}/result', {'result': 'INCOMPATIBLE'}, format='json')
    assert r.status_code == 400

    r = bank.post(f'/api/v1/blood-bank/units/{unit.id}/issue', {'patientId': patient.id}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'ISSUED'
    assert r.data['data']['patientId'] == patient.id
    assert sent == [('blood.low_stock', {'bloodType': 'O-', 'availableUnits': 0, 'status': 'LOW_STOCK'})]

    r = bank.post(f'/api/v1/blood-bank/units/{unit.id}/issue', {'patientId': patient.id}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Blood unit is not available'


def test_issue_expired_unit(bank, patient):
    unit = make_unit(expiry_date=timezone.now() - timedelta(days=1))
    r = bank.post(f'/api/v1/blood-bank/units/{unit.id}/issue', {'patientId': patient.id}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Blood unit has expired'


def test_alerts_and_expire_job(bank):
    soon = make_unit('A+', expiry_date=timezone.now() + timedelta(days=2))
    make_unit('A+', expiry_date=timezone.now() + timedelta(days=30))
    stale = make_unit('A+', expiry_date=timezone.now() - timedelta(days=1))

    r = bank.get('/api/v1/blood-bank/alerts')
    low = {a['bloodType']: a['availableUnits'] for a in r.data['data']['lowStock']}
    assert low['A+'] == 2
    assert len(low) == len(blood_bank.BLOOD_TYPES)
    assert [u['id'] for u in r.data['data']['expiring']] == [stale.id, soon.id]

    assert blood_bank.expire_units() == 1
    stale.refresh_from_db()
    assert stale.status == 'EXPIRED'


def test_receptionist_is_denied(client_for):
    assert client_for('receptionist').get('/api/v1/blood-bank/inventory').status_code == 403


def test_issue_locks_the_unit(bank, patient, monkeypatch):
    locked = []
    original = QuerySet.select_for_update

    def spy(self, *args, **kwargs):
        locked.append(self.model)
        return original(self, *args, **kwargs)

    monkeypatch.setattr(QuerySet, 'select_for_update', spy)
    unit = make_unit()
    r = bank.post(f'/api/v1/blood-bank/units/{unit.id}/issue', {'patientId': patient.id}, format='json')
    assert r.status_code == 200
    assert BloodUnit in locked
    assert bank.post('/api/v1/blood-bank/units/99999/issue', {'patientId': patient.id},
                     format='json').status_code == 404
