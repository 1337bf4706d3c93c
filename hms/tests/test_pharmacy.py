from datetime import timedelta

import pytest
from django.db.models.query import QuerySet
from django.utils import timezone

from hms.models import InventoryLog, Medication, Prescription
from hms.tests.factories import make_doctor, make_medication, make_patient

pytestmark = pytest.mark.django_db


@pytest.fixture
def pharmacist(client_for):
    return client_for('pharmacist')


def prescribe(client, patient, med, quantity=10, **extra):
    body = {'patientId': patient.id, 'medicationId': med.id, 'dosage': '500mg', 'frequency': 'BID',
            'quantity': quantity, **extra}
    return client.post('/api/v1/pharmacy/prescriptions', body, format='json')


def test_create_medication_logs_initial_stock(pharmacist):
    r = pharmacist.post('/api/v1/pharmacy/medications', {
        'name': 'Amoxicillin', 'strength': '500mg', 'unitPrice': '0.40', 'stockQuantity': 200, 'reorderLevel': 20,
    }, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['stockQuantity'] == 200
    assert data['lowStock'] is False
    log = InventoryLog.objects.get(medication_id=data['id'])
    assert (log.change_type, log.previous_stock, log.new_stock) == ('RECEIVED', 0, 200)


def test_nurse_can_read_but_not_write(client_for):
    nurse = client_for('nurse')
    make_medication(name='Paracetamol')
    assert nurse.get('/api/v1/pharmacy/medications').status_code == 200
    r = nurse.post('/api/v1/pharmacy/medications', {'name': 'X'}, format='json')
    assert r.status_code == 403


def test_stock_add_subtract_and_insufficient(pharmacist):
    med = make_medication(stock_quantity=10)
    url = f'/api/v1/pharmacy/medications/{med.id}/stock'
    r = pharmacist.post(url, {'quantity': 5, 'operation': 'add', 'reason': 'Delivery'}, format='json')
    assert r.data['data']['stockQuantity'] == 15
    r = pharmacist.post(url, {'quantity': 15, 'operation': 'subtract'}, format='json')
    assert r.data['data']['stockQuantity'] == 0
    r = pharmacist.post(url, {'quantity': 1, 'operation': 'subtract'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Insufficient stock'

    r = pharmacist.get(f'/api/v1/pharmacy/medications/{med.id}/inventory-logs')
    assert [x['changeType'] for x in r.data['data']] == ['ISSUED', 'RECEIVED']
    assert r.data['data'][0]['newStock'] == 0


def test_low_stock_and_expiring(pharmacist):
    low = make_medication(name='Low', stock_quantity=5, reorder_level=10)
    make_medication(name='Plenty', stock_quantity=500)
    soon = make_medication(name='Soon', expiry_date=timezone.localdate() + timedelta(days=10))
    make_medication(name='Later', expiry_date=timezone.localdate() + timedelta(days=300))
    make_medication(name='Inactive', stock_quantity=0, is_active=False)

    r = pharmacist.get('/api/v1/pharmacy/medications/low-stock')
    assert [m['id'] for m in r.data['data']] == [low.id]
    r = pharmacist.get('/api/v1/pharmacy/medications/expiring')
    assert [m['id'] for m in r.data['data']] == [soon.id]
    r = pharmacist.get('/api/v1/pharmacy/medications/expiring', {'days': 365})
    assert len(r.data['data']) == 2

    r = pharmacist.get('/api/v1/pharmacy/medications', {'lowStock': 'true'})
    assert r.data['pagination']['total'] == 1
    r = pharmacist.get('/api/v1/pharmacy/medications', {'search': 'plen'})
    assert r.data['data'][0]['name'] == 'Plenty'


def test_update_and_deactivate(pharmacist):
    med = make_medication(name='Ibuprofen')
    r = pharmacist.patch(f'/api/v1/pharmacy/medications/{med.id}', {'reorderLevel': 50}, format='json')
    assert r.data['data']['reorderLevel'] == 50
    r = pharmacist.delete(f'/api/v1/pharmacy/medications/{med.id}')
    assert r.data['data']['isActive'] is False
    assert pharmacist.get('/api/v1/pharmacy/medications').data['pagination']['total'] == 0


def test_prescribe_and_dispense(client_for, pharmacist, patient):
    doctor = make_doctor()
    doc_client = client_for('doctor', user=doctor.user)
    med = make_medication(stock_quantity=30)

    r = prescribe(doc_client, patient, med, quantity=20, refills=1)
    assert r.status_code == 201
    rx = r.data['data']
    assert rx['status'] == 'ACTIVE'
    assert rx['doctorId'] == doctor.id

    r = pharmacist.post(f"/api/v1/pharmacy/prescriptions/{rx['id']}/dispense")
    assert r.status_code == 200
    assert r.data['data']['status'] == 'COMPLETED'
    assert r.data['data']['dispensedBy'] == pharmacist.user.id
    med.refresh_from_db()
    assert med.stock_quantity == 10
    assert InventoryLog.objects.filter(medication=med, change_type='ISSUED', quantity=20).exists()

    r = pharmacist.post(f"/api/v1/pharmacy/prescriptions/{rx['id']}/dispense")
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Prescription is not active'


def test_prescription_exceeding_stock(client_for, patient):
    med = make_medication(stock_quantity=3)
    r = prescribe(client_for('doctor'), patient, med, quantity=5)
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Insufficient medication stock'


def test_dispense_when_stock_ran_out(client_for, pharmacist, patient):
    med = make_medication(stock_quantity=5)
    rx_id = prescribe(client_for('doctor'), patient, med, quantity=5).data['data']['id']
    Medication.objects.filter(id=med.id).update(stock_quantity=2)
    r = pharmacist.post(f'/api/v1/pharmacy/prescriptions/{rx_id}/dispense')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Insufficient medication stock'


def test_patient_sees_only_own_prescriptions(client_for, patient):
    med = make_medication()
    other = make_patient()
    doctor = client_for('doctor')
    own_rx = prescribe(doctor, patient, med).data['data']['id']
    other_rx = prescribe(doctor, other, med).data['data']['id']

    client = client_for('patient', user=patient.user)
    r = client.get(f'/api/v1/pharmacy/patients/{patient.id}/prescriptions')
    assert [p['id'] for p in r.data['data']] == [own_rx]
    assert client.get(f'/api/v1/pharmacy/patients/{other.id}/prescriptions').status_code == 403
    assert client.get(f'/api/v1/pharmacy/prescriptions/{other_rx}').status_code == 403
    assert client.get(f'/api/v1/pharmacy/prescriptions/{own_rx}').status_code == 200


def test_stats(pharmacist, client_for, patient):
    med = make_medication(stock_quantity=5, reorder_level=10)
    prescribe(client_for('doctor'), patient, med, quantity=1)
    r = pharmacist.get('/api/v1/pharmacy/stats')
    data = r.data['data']
    assert data['totalMedications'] == 1
    assert data['lowStockCount'] == 1
    assert data['activePrescriptions'] == 1


def test_dispense_locks_the_prescription(client_for, pharmacist, patient, monkeypatch):
    locked = []
    original = QuerySet.select_for_update

    def spy(self, *args, **kwargs):
        locked.append(self.model)
        return original(self, *args, **kwargs)

    monkeypatch.setattr(QuerySet, 'select_for_update', spy)
    med = make_medication(stock_quantity=10)
    rx_id = prescribe(client_for('doctor'), patient, med, quantity=4).data['data']['id']
    assert pharmacist.post(f'/api/v1/pharmacy/prescriptions/{rx_id}/dispense').status_code == 200
    assert Prescription in locked
    assert pharmacist.post(f'/api/v1/pharmacy/prescriptions/{rx_id}/dispense').status_code == 400
    med.refresh_from_db()
    assert med.stock_quantity == 6
    assert InventoryLog.objects.filter(medication=med, change_type='ISSUED').count() == 1
