import pytest

from hms.models import LabSample, LabTest
from hms.services import barcode
from hms.tests.factories import make_catalog, make_lab_test, make_patient

pytestmark = pytest.mark.django_db


@pytest.fixture
def lab(client_for):
    return client_for('lab_technician')


@pytest.fixture
def sent(monkeypatch):
    events = []
    monkeypatch.setattr('hms.services.laboratory.broadcast', lambda kind, **kw: events.append((kind, kw)))
    return events


def order(client, patient, catalog, **extra):
    return client.post('/api/v1/laboratory/tests',
                       {'patientId': patient.id, 'catalogId': catalog.id, **extra}, format='json')


def test_catalog_create_and_duplicate_code(lab):
    body = {'code': 'CBC', 'name': 'Complete Blood Count', 'department': 'Hematology',
            'specimenType': 'BLOOD', 'price': '25.00'}
    r = lab.post('/api/v1/laboratory/catalog', body, format='json')
    assert r.status_code == 201
    assert r.data['data']['price'] == 25.0
    r = lab.post('/api/v1/laboratory/catalog', body, format='json')
    assert r.status_code == 409


def test_order_numbers_and_stat_priority(client_for, patient):
    doctor = client_for('doctor')
    catalog = make_catalog('CBC')
    first = order(doctor, patient, catalog).data['data']
    second = order(doctor, patient, catalog, priority='STAT').data['data']
    assert first['orderNumber'].startswith('L') and len(first['orderNumber']) == 13
    assert int(second['orderNumber'][-4:]) == int(first['orderNumber'][-4:]) + 1
    assert first['status'] == 'ORDERED'
    assert first['urgent'] is False
    assert second['urgent'] is True


def test_full_workflow_to_completion(lab, patient, sent):
    catalog = make_catalog('GLU', department='Chemistry')
    test_id = order(lab, patient, catalog).data['data']['id']

    r = lab.post(f'/api/v1/laboratory/tests/{test_id}/process', {'action': 'ACCEPT', 'volume': '5 mL'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'SAMPLE_COLLECTED'
    code = r.data['data']['samples'][0]['barcode']
    assert barcode.is_valid(code)

    r = lab.post(f'/api/v1/laboratory/tests/{test_id}/receive')
    assert r.data['data']['status'] == 'RECEIVED'
    assert r.data['data']['samples'][0]['receivedAt']

    r = lab.post(f'/api/v1/laboratory/tests/{test_id}/results', {'results': [
        {'parameter': 'Glucose', 'value': '5.1', 'unit': 'mmol/L', 'flag': 'NORMAL'},
    ]}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'IN_PROGRESS'

    r = lab.post(f'/api/v1/laboratory/tests/{test_id}/results', {'results': [
        {'parameter': 'Glucose', 'value': '5.3', 'unit': 'mmol/L', 'status': 'FINAL'},
    ]}, format='json')
    data = r.data['data']
    assert data['status'] == 'COMPLETED'
    assert data['completedDate']
    assert [x['value'] for x in data['results']] == ['5.3']
    assert sent == []

    r = lab.get(f'/api/v1/laboratory/barcodes/{code}')
    assert r.status_code == 200
    assert r.data['type'] == 'SAMPLE'
    assert r.data['data']['labTest']['id'] == test_id


def test_reject_requires_reason(lab, patient):
    test = make_lab_test(patient)
    r = lab.post(f'/api/v1/laboratory/tests/{test.id}/process', {'action': 'REJECT'}, format='json')
    assert r.status_code == 400
    r = lab.post(f'/api/v1/laboratory/tests/{test.id}/process',
                 {'action': 'REJECT', 'reason': 'Hemolysed'}, format='json')
    assert r.data['data']['status'] == 'REJECTED'
    assert r.data['data']['rejectionReason'] == 'Hemolysed'

    r = lab.post(f'/api/v1/laboratory/tests/{test.id}/process', {'action': 'ACCEPT'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Only ORDERED tests can be processed'


def test_results_need_received_sample(lab, patient):
    test = make_lab_test(patient)
    r = lab.post(f'/api/v1/laboratory/tests/{test.id}/results',
                 {'results': [{'parameter': 'Hb', 'value': '13'}]}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Results can only be entered for RECEIVED or IN_PROGRESS tests'

    test.status = 'RECEIVED'
    test.save()
    r = lab.post(f'/api/v1/laboratory/tests/{test.id}/results',
                 {'results': [{'parameter': 'Hb', 'value': '13'}]}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'No sample collected for this test'


def test_critical_result_is_broadcast(lab, patient, sent):
    test = make_lab_test(patient, status='RECEIVED')
    LabSample.objects.create(lab_test=test, barcode='LTEST000000001', sample_type='BLOOD')
    r = lab.post(f'/api/v1/laboratory/tests/{test.id}/results', {'results': [
        {'parameter': 'Potassium', 'value': '7.2', 'flag': 'CRITICAL'},
        {'parameter': 'Sodium', 'value': '140', 'flag': 'NORMAL'},
    ]}, format='json')
    assert r.status_code == 200
    assert len(sent) == 1
    kind, payload = sent[0]
    assert kind == 'lab.critical'
    assert payload['parameters'] == ['Potassium']
    assert payload['orderNumber'] == test.order_number


def test_status_transitions_are_enforced(lab, patient):
    test = make_lab_test(patient)
    r = lab.patch(f'/api/v1/laboratory/tests/{test.id}/status', {'status': 'COMPLETED'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Invalid status transition from ORDERED to COMPLETED'

    r = lab.patch(f'/api/v1/laboratory/tests/{test.id}/status', {'status': 'SAMPLE_COLLECTED'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'SAMPLE_COLLECTED'


def test_cancel(lab, patient):
    test = make_lab_test(patient)
    r = lab.post(f'/api/v1/laboratory/tests/{test.id}/cancel', {'reason': 'Duplicate order'}, format='json')
    assert r.data['data']['status'] == 'CANCELLED'
    assert r.data['data']['cancellationReason'] == 'Duplicate order'

    done = make_lab_test(patient, status='COMPLETED')
    r = lab.post(f'/api/v1/laboratory/tests/{done.id}/cancel', {}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Cannot cancel a completed test'


def test_list_filters_and_priority_order(lab):
    patient = make_patient()
    routine = make_lab_test(patient)
    stat = make_lab_test(patient, priority='STAT', urgent=True)
    make_lab_test(patient, status='COMPLETED')

    r = lab.get('/api/v1/laboratory/tests/pending')
    assert [t['id'] for t in r.data['data']] == [stat.id, routine.id]

    r = lab.get('/api/v1/laboratory/tests', {'status': 'ordered,completed', 'urgent': 'false'})
    assert r.data['pagination']['total'] == 2

    r = lab.get('/api/v1/laboratory/tests', {'status': 'ORDERED'})
    assert r.data['pagination']['total'] == 2


def test_batch_order(client_for, patient):
    client = client_for('nurse')
    a, b = make_catalog(), make_catalog()
    r = client.post('/api/v1/laboratory/tests/batch',
                    {'patientId': patient.id, 'catalogIds': [a.id, b.id], 'priority': 'URGENT'}, format='json')
    assert r.status_code == 201
    assert len(r.data['data']) == 2
    assert LabTest.objects.filter(patient=patient, priority='URGENT').count() == 2


def test_statistics(lab, patient):
    make_lab_test(patient)
    make_lab_test(patient, status='COMPLETED')
    make_lab_test(patient, status='CANCELLED', urgent=True)
    r = lab.get('/api/v1/laboratory/statistics')
    assert r.status_code == 200
    data = r.data['data']
    assert data['total'] == 3
    assert data['ordered'] == 1
    assert data['completed'] == 1
    assert data['byDepartment']['Hematology']['total'] == 3


def test_receptionist_cannot_order(client_for, patient):
    r = order(client_for('receptionist'), patient, make_catalog())
    assert r.status_code == 403


def test_reagents_equipment_and_labels(lab):
    r = lab.post('/api/v1/laboratory/reagents', {
        'name': 'Glucose control', 'lotNumber': 'GL-2024', 'expiryDate': '2099-01-01', 'quantity': 5,
    }, format='json')
    assert r.status_code == 201
    reagent_code = r.data['data']['barcode']
    assert reagent_code.startswith('R')

    body = {'name': 'Analyzer', 'serialNumber': 'SN-001', 'model': 'XN-1000'}
    r = lab.post('/api/v1/laboratory/equipment', body, format='json')
    assert r.status_code == 201
    assert r.data['data']['barcode'].startswith('E')
    assert lab.post('/api/v1/laboratory/equipment', body, format='json').status_code == 409

    r = lab.post('/api/v1/laboratory/barcodes/labels', {'barcodes': [reagent_code, 'bogus']}, format='json')
    labels = r.data['data']
    assert labels[0]['type'] == 'reagent'
    assert 'Lot: GL-2024' in labels[0]['label']
    assert labels[1]['type'] == 'unknown'
    assert labels[1]['error'] == 'Invalid barcode format'
