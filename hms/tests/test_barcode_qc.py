from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hms.services import barcode, quality_control as qc
from hms.tests.factories import make_reagent


@pytest.mark.parametrize('code,valid', [
    ('LABCDEFGHIJ', True),
    ('R1234567890ABCDEFGHIJK', False),
    ('E0123456789', True),
    ('X0123456789', False),
    ('L0123', False),
    ('labcdefghij', False),
])
def test_barcode_format(code, valid):
    assert barcode.is_valid(code) is valid


def test_generated_barcodes_match_format(db):
    code = barcode.sample_barcode('cbc-1')
    assert code.startswith('L')
    assert 'CBC1' in code
    assert barcode.is_valid(code)
    assert barcode.is_valid(barcode.reagent_barcode('lot 42'))
    assert barcode.is_valid(barcode.equipment_barcode(''))


def test_lookup_errors(db):
    with pytest.raises(ValidationError):
        barcode.lookup('nope')
    with pytest.raises(NotFound):
        barcode.lookup('R0000000000AAAA')


@pytest.mark.parametrize('expected,actual,result', [
    ('4.0 ± 0.5', '4.2', 'PASS'),
    ('4.0 ± 0.5', '4.5', 'PASS'),
    ('4.0 ± 0.5', '3.4', 'WARNING'),
    ('4.0 ± 0.5', '4.9', 'WARNING'),
    ('4.0 ± 0.5', '5.5', 'FAIL'),
    ('4.0 ± 0.5', '2.0', 'FAIL'),
    ('100 - 10', '95 mg/dL', 'PASS'),
    ('4.0 ± 0.5', 'hemolysed', 'INVALID'),
    ('normal', '4.2', 'INVALID'),
])
def test_qc_evaluate(expected, actual, result):
    assert qc.evaluate(expected, actual) == result


@pytest.mark.django_db
class TestQualityControlAPI:
    def test_record_pass_and_fail(self, client_for):
        client = client_for('lab_technician')
        make_reagent(name='Glucose control', lot_number='GC-1')
        r = client.post('/api/v1/laboratory/qc', {
            'parameter': 'Glucose', 'controlLot': 'GC-1', 'expectedRange': '5.0 ± 0.3', 'actualValue': '5.1',
        }, format='json')
        assert r.status_code == 201
        assert r.data['data']['result'] == 'PASS'
        assert r.data['data']['correctiveAction'] is None

        r = client.post('/api/v1/laboratory/qc', {
            'parameter': 'Glucose', 'controlLot': 'GC-1', 'expectedRange': '5.0 ± 0.3', 'actualValue': '9.0',
        }, format='json')
        assert r.data['data']['result'] == 'FAIL'
        assert 'recalibrate' in r.data['data']['correctiveAction']

        r = client.get('/api/v1/laboratory/qc/statistics', {'parameter': 'Glucose'})
        stats = r.data['data']
        assert (stats['total'], stats['pass'], stats['fail'], stats['passRate']) == (2, 1, 1, 50)

        r = client.get('/api/v1/laboratory/qc/history', {'parameter': 'Glucose'})
        assert len(r.data['data']) == 2
        assert client.get('/api/v1/laboratory/qc/history').status_code == 400

        r = client.get('/api/v1/laboratory/qc/dashboard')
        assert r.data['data']['failingParameters'] == ['Glucose']

    def test_expired_or_unknown_control(self, client_for):
        client = client_for('lab_technician')
        make_reagent(lot_number='OLD-1', expiry_date=timezone.localdate() - timedelta(days=1))
        body = {'parameter': 'Hb', 'controlLot': 'OLD-1', 'expectedRange': '13 ± 1', 'actualValue': '13'}
        r = client.post('/api/v1/laboratory/qc', body, format='json')
        assert r.status_code == 400
        assert r.data['error']['message'] == 'Control material OLD-1 has expired'

        r = client.post('/api/v1/laboratory/qc', {**body, 'controlLot': 'MISSING'}, format='json')
        assert r.status_code == 400
