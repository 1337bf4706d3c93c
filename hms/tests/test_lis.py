import pytest
import requests
from django.test import override_settings

from hms.models import LabTest, LabTestCatalog, LISIntegration
from hms.services import lis
from hms.tests.factories import make_catalog, make_lab_test

pytestmark = pytest.mark.django_db


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status_code = status
        self.content = b'{}' if payload is not None else b''

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')

    def json(self):
        return self.payload


@pytest.fixture
def config():
    return LISIntegration.objects.create(name='Main LIS', endpoint='https://lis.example.test/api/',
                                         api_key='secret-key', timeout=5)


@pytest.fixture
def calls(monkeypatch):
    log = []
    responses = []

    def fake_request(method, url, json=None, headers=None, timeout=None):
        log.append({'method': method, 'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        result = responses.pop(0) if responses else FakeResponse({})
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr('hms.services.lis.requests.request', fake_request)
    return log, responses


def test_order_is_pushed_to_lis(client_for, patient, config, calls):
    log, _ = calls
    client = client_for('doctor')
    catalog = make_catalog('CBC')
    r = client.post('/api/v1/laboratory/tests', {'patientId': patient.id, 'catalogId': catalog.id,
                                                 'clinicalNotes': 'Fatigue'}, format='json')
    assert r.status_code == 201
    assert len(log) == 1
    call = log[0]
    assert call['method'] == 'POST'
    assert call['url'] == 'https://lis.example.test/api/orders'
    assert call['headers']['Authorization'] == 'Bearer secret-key'
    assert call['timeout'] == 5
    assert call['json']['patientInfo']['mrn'] == patient.mrn
    assert call['json']['tests'][0]['testCode'] == 'CBC'
    config.refresh_from_db()
    assert config.last_sync_status == 'SUCCESS'


def test_lis_failure_keeps_the_order(client_for, patient, config, calls):
    _, responses = calls
    responses.append(requests.ConnectionError('refused'))
    client = client_for('doctor')
    r = client.post('/api/v1/laboratory/tests', {'patientId': patient.id, 'catalogId': make_catalog().id},
                    format='json')
    assert r.status_code == 201
    assert LabTest.objects.count() == 1
    config.refresh_from_db()
    assert config.last_sync_status == 'FAILED'
    assert 'refused' in config.last_error


def test_send_order_without_config_is_noop(patient, calls):
    log, _ = calls
    assert lis.send_order(make_lab_test(patient)) is False
    assert log == []


def test_inbound_results_complete_the_test(client_for, patient):
    test = make_lab_test(patient)
    client = client_for('lab_technician')
    r = client.post('/api/v1/laboratory/lis/results', {
        'orderNumber': test.order_number,
        'status': 'COMPLETED',
        'results': [
            {'parameter': 'WBC', 'value': '6.1', 'units': '10^9/L', 'flag': 'NORMAL', 'status': 'FINAL'},
            {'parameter': 'Hb', 'value': '9.0', 'units': 'g/dL', 'flag': 'LOW', 'status': 'FINAL',
             'performedDate': '2024-05-01T10:00:00Z'},
        ],
    }, format='json')
    assert r.status_code == 200
    data = r.data['data']
    assert data['status'] == 'COMPLETED'
    assert data['samples'][0]['collectedBy'] == 'LIS_SYSTEM'
    assert data['samples'][0]['barcode'] == f'{test.order_number}-S1'
    assert {x['parameter'] for x in data['results']} == {'WBC', 'Hb'}


def test_inbound_results_unknown_order(client_for):
    r = client_for('lab_technician').post('/api/v1/laboratory/lis/results',
                                          {'orderNumber': 'L000', 'status': 'COMPLETED'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Lab test with order number L000 not found'


def test_partial_results_leave_test_in_progress(patient):
    test = make_lab_test(patient)
    lis.receive_results(test.order_number, {'status': 'PARTIAL', 'results': [{'parameter': 'Hb', 'value': 12}]})
    test.refresh_from_db()
    assert test.status == 'IN_PROGRESS'
    assert test.results.get().value == '12'


def test_catalog_sync(client_for, config, calls):
    log, responses = calls
    make_catalog('CBC', name='Old name')
    responses.append(FakeResponse({'data': [
        {'testCode': 'CBC', 'testName': 'Complete Blood Count', 'cost': 30, 'turnaroundTime': 4},
        {'testCode': 'TSH', 'testName': 'Thyroid Stimulating Hormone', 'department': 'Endocrine'},
    ]}))
    r = client_for('admin').post('/api/v1/laboratory/lis/catalog/sync')
    assert r.status_code == 200
    assert r.data['data']['synced'] == 2
    assert log[0]['method'] == 'GET'
    assert log[0]['url'].endswith('/catalog/tests')
    cbc = LabTestCatalog.objects.get(code='CBC')
    assert cbc.name == 'Complete Blood Count'
    assert cbc.turnaround_hours == 4
    assert LabTestCatalog.objects.filter(code='TSH').exists()


def test_catalog_sync_requires_config(client_for):
    r = client_for('admin').post('/api/v1/laboratory/lis/catalog/sync')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'No active LIS integration configured'


def test_order_status_query_failure(client_for, config, calls):
    _, responses = calls
    responses.append(FakeResponse({'error': 'boom'}, status=502))
    r = client_for('lab_technician').get('/api/v1/laboratory/lis/orders/L202401010001/status')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Failed to query order status from LIS'


def test_config_activation_is_exclusive(client_for, config):
    client = client_for('admin')
    r = client.post('/api/v1/laboratory/lis/config', {
        'name': 'Backup', 'endpoint': 'https://backup.example.test', 'apiKey': 'k2',
    }, format='json')
    assert r.status_code == 201
    assert 'apiKey' not in r.data['data']
    config.refresh_from_db()
    assert config.is_active is False
    assert lis.active_config().name == 'Backup'


@override_settings(LIS_TIMEOUT=12)
def test_config_timeout_defaults_to_setting(client_for):
    r = client_for('admin').post('/api/v1/laboratory/lis/config', {
        'name': 'Main', 'endpoint': 'https://lis.example.test', 'apiKey': 'k1',
    }, format='json')
    assert r.data['data']['timeout'] == 12
    assert LISIntegration.objects.create(name='Spare', endpoint='https://spare.example.test',
                                         api_key='k2', is_active=False).timeout == 12
