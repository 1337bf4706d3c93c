"""Client for the external laboratory information system (LIS).

Orders are pushed as JSON to ``{endpoint}/orders``; the LIS posts results
back to our inbound endpoint which calls :func:`receive_results`.  The
outcome of every outbound call is recorded on the active
:class:`~hms.models.LISIntegration` row.
"""
import logging
from decimal import Decimal

import requests
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework.exceptions import ValidationError

from hms.models import LabResult, LabSample, LabTest, LabTestCatalog, LISIntegration

logger = logging.getLogger(__name__)

LIS_COLLECTOR = 'LIS_SYSTEM'


def active_config() -> LISIntegration | None:
    return LISIntegration.objects.filter(is_active=True).order_by('-id').first()


def _record_status(config: LISIntegration, status: str, error: str = '') -> None:
    config.last_sync_at = timezone.now()
    config.last_sync_status = status
    config.last_error = error[:2000]
    config.save(update_fields=['last_sync_at', 'last_sync_status', 'last_error'])


def _call(config: LISIntegration, method: str, path: str, payload: dict | None = None) -> dict:
    url = config.endpoint.rstrip('/') + path
    headers = {'Authorization': f'Bearer {config.api_key}', 'Content-Type': 'application/json'}
    r = requests.request(method, url, json=payload, headers=headers, timeout=config.timeout)
    r.raise_for_status()
    return r.json() if r.content else {}


def order_payload(test: LabTest) -> dict:
    patient = test.patient
    return {
        'orderNumber': test.order_number,
        'patientId': patient.id,
        'patientInfo': {
            'firstName': patient.user.first_name,
            'lastName': patient.user.last_name,
            'dateOfBirth': patient.date_of_birth.isoformat(),
            'gender': patient.gender,
            'mrn': patient.mrn,
        },
        'tests': [{
            'testCode': test.catalog.code,
            'testName': test.catalog.name,
            'priority': test.priority,
            'clinicalInfo': test.clinical_notes or None,
        }],
        'orderedBy': test.ordered_by_id,
        'orderedDate': test.ordered_date.isoformat(),
        'urgent': test.urgent,
    }


def send_order(test: LabTest) -> bool:
    """Push ``test`` to the LIS; False when no integration is configured."""
    config = active_config()
    if not config:
        logger.warning('No active LIS integration configured')
        return False
    try:
        _call(config, 'POST', '/orders', order_payload(test))
    except requests.RequestException as exc:
        _record_status(config, 'FAILED', str(exc))
        logger.error('Failed to send order %s to LIS: %s', test.order_number, exc)
        raise ValidationError('Failed to send order to LIS system')
    _record_status(config, 'SUCCESS')
    logger.info('Sent order %s to LIS', test.order_number)
    return True


def receive_results(order_number: str, payload: dict) -> LabTest:
    test = (LabTest.objects.select_related('catalog')
            .filter(order_number=order_number).first())
    if not test:
        raise ValidationError(f'Lab test with order number {order_number} not found')

    results = payload.get('results') or []
    with transaction.atomic():
        test.status = 'COMPLETED' if payload.get('status') == 'COMPLETED' else 'IN_PROGRESS'
        if test.status == 'COMPLETED':
            test.completed_date = timezone.now()
        test.save(update_fields=['status', 'completed_date', 'updated_at'])
        if results and not test.samples.exists():
            LabSample.objects.create(
                lab_test=test,
                barcode=f'{order_number}-S1',
                sample_type=test.catalog.specimen_type,
                collected_by=LIS_COLLECTOR,
            )
        for item in results:
            performed = parse_datetime(item.get('performedDate') or '') or timezone.now()
            LabResult.objects.update_or_create(
                lab_test=test,
                parameter=item['parameter'],
                defaults={
                    'value': str(item.get('value', '')),
                    'unit': item.get('units') or '',
                    'reference_range': item.get('referenceRange') or '',
                    'flag': item.get('flag') or '',
                    'status': item.get('status') or 'PRELIMINARY',
                    'performed_by': LIS_COLLECTOR,
                    'performed_date': performed,
                },
            )
    logger.info('Processed %d LIS results for order %s', len(results), order_number)
    return test


def sync_catalog() -> int:
    """Upsert the LIS test catalog locally; returns the number of tests synced."""
    config = active_config()
    if not config:
        raise ValidationError('No active LIS integration configured')
    try:
        tests = _call(config, 'GET', '/catalog/tests')
    except requests.RequestException as exc:
        _record_status(config, 'FAILED', str(exc))
        logger.error('Failed to sync test catalog from LIS: %s', exc)
        raise ValidationError('Failed to sync test catalog from LIS')
    if isinstance(tests, dict):
        tests = tests.get('data') or []
    with transaction.atomic():
        for t in tests:
            LabTestCatalog.objects.update_or_create(
                code=t['testCode'],
                defaults={
                    'name': t.get('testName') or t['testCode'],
                    'category': t.get('category') or '',
                    'department': t.get('department') or '',
                    'specimen_type': t.get('specimenType') or '',
                    'normal_range': t.get('referenceRange') or '',
                    'units': t.get('units') or '',
                    'turnaround_hours': int(t.get('turnaroundTime') or 24),
                    'price': Decimal(str(t.get('cost') or 0)),
                    'is_active': t.get('isActive', True),
                },
            )
    _record_status(config, 'SUCCESS')
    return len(tests)


def query_order_status(order_number: str) -> dict:
    config = active_config()
    if not config:
        raise ValidationError('No active LIS integration configured')
    try:
        return _call(config, 'GET', f'/orders/{order_number}/status')
    except requests.RequestException as exc:
        logger.error('Failed to query order status for %s: %s', order_number, exc)
        raise ValidationError('Failed to query order status from LIS')


def format_config(c: LISIntegration) -> dict:
    return {
        'id': c.id,
        'name': c.name,
        'endpoint': c.endpoint,
        'timeout': c.timeout,
        'isActive': c.is_active,
        'lastSyncAt': c.last_sync_at.isoformat() if c.last_sync_at else None,
        'lastSyncStatus': c.last_sync_status or None,
        'lastError': c.last_error or None,
    }
