import pytest
from django.db import DatabaseError
from django.utils import timezone

from hms.tests.factories import make_medication, make_patient

pytestmark = pytest.mark.django_db


def test_healthz(client):
    r = client.get('/healthz')
    assert r.status_code == 200
    assert r.json() == {'ok': True, 'database': 'ok'}


def test_healthz_reports_database_outage(client, monkeypatch):
    class DownConnection:
        def cursor(self):
            raise DatabaseError('down')
    monkeypatch.setattr('hms.views.health.connection', DownConnection())
    r = client.get('/healthz')
    assert r.status_code == 503
    assert r.json()['database'] == 'unavailable'


def test_dashboard_overview(client_for):
    p = make_patient()
    p.last_check_in = timezone.now()
    p.save()
    make_patient(is_active=False)
    make_medication(stock_quantity=2, reorder_level=10)

    admin = client_for('admin')
    data = admin.get('/api/v1/dashboard').data['data']
    assert data['patients'] == {'total': 2, 'active': 1, 'checkedInToday': 1}
    assert data['lowStockMedications'] == 1
    assert 'O+' in data['lowStockBloodTypes']
    assert 'billing' in data


def test_dashboard_is_admin_only(client_for):
    assert client_for('doctor').get('/api/v1/dashboard').status_code == 403
