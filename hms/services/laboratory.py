"""
Laboratory orders: catalog, ordering, sample handling and result entry.

Every status change goes through ``LAB_TRANSITIONS``; the dedicated
workflow operations (process, collect, receive, enter results) check the
status they expect first so that callers get a precise message.
"""
import logging
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.db.models import Case, Count, IntegerField, Max, Value, When
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hms.exceptions import Conflict
from hms.models import LabEquipment, LabReagent, LabResult, LabSample, LabTest, LabTestCatalog
from hms.realtime.notify import broadcast
from hms.services import barcode, lis
from hms.services.audit import log_action
from hms.services.common import ensure_status, ensure_transition, iso, money, split_csv

logger = logging.getLogger(__name__)

LAB_TRANSITIONS = {
    'ORDERED': ['SAMPLE_COLLECTED', 'CANCELLED', 'REJECTED'],
    'SAMPLE_COLLECTED': ['RECEIVED', 'CANCELLED', 'REJECTED'],
    'RECEIVED': ['IN_PROGRESS', 'CANCELLED', 'REJECTED'],
    'IN_PROGRESS': ['COMPLETED', 'CANCELLED'],
    'COMPLETED': [],
    'CANCELLED': [],
    'REJECTED': [],
}
PENDING_STATUSES = ('ORDERED', 'SAMPLE_COLLECTED', 'RECEIVED')
PRIORITY_RANK = Case(
    When(priority='STAT', then=Value(3)),
    When(priority='URGENT', then=Value(2)),
    default=Value(1),
    output_field=IntegerField(),
)


# -- formatting ---------------------------------------------------------------
def format_catalog(c: LabTestCatalog) -> dict:
    return {
        'id': c.id,
        'code': c.code,
        'name': c.name,
        'category': c.category,
        'department': c.department,
        'specimenType': c.specimen_type,
        'description': c.description,
        'normalRange': c.normal_range,
        'units': c.units,
        'turnaroundHours': c.turnaround_hours,
        'price': money(c.price),
        'isActive': c.is_active,
    }


def format_sample(s: LabSample) -> dict:
    return {
        'id': s.id,
        'barcode': s.barcode,
        'sampleType': s.sample_type,
        'collectedAt': iso(s.collected_at),
        'collectedBy': s.collected_by,
        'volume': s.volume,
        'condition': s.condition,
        'storageLocation': s.storage_location,
        'receivedAt': iso(s.received_at),
        'notes': s.notes,
    }


def format_result(r: LabResult) -> dict:
    return {
        'id': r.id,
        'parameter': r.parameter,
        'value': r.value,
        'unit': r.unit,
        'referenceRange': r.reference_range,
        'flag': r.flag or None,
        'status': r.status,
        'performedBy': r.performed_by,
        'performedDate': iso(r.performed_date),
        'verifiedBy': r.verified_by_id,
        'comments': r.comments,
    }


def format_lab_test(t: LabTest, detail: bool = False) -> dict:
    data = {
        'id': t.id,
        'orderNumber': t.order_number,
        'patientId': t.patient_id,
        'catalogId': t.catalog_id,
        'testCode': t.catalog.code,
        'testName': t.catalog.name,
        'department': t.catalog.department,
        'orderedBy': t.ordered_by_id,
        'orderedDate': iso(t.ordered_date),
        'priority': t.priority,
        'urgent': t.urgent,
        'status': t.status,
        'clinicalNotes': t.clinical_notes,
        'diagnosis': t.diagnosis,
        'completedDate': iso(t.completed_date),
    }
    if t.rejection_reason:
        data['rejectionReason'] = t.rejection_reason
    if t.cancellation_reason:
        data['cancellationReason'] = t.cancellation_reason
    if detail:
        data['samples'] = [format_sample(s) for s in t.samples.all()]
        data['results'] = [format_result(r) for r in t.results.order_by('parameter')]
    return data


def format_reagent(r: LabReagent) -> dict:
    return {
        'id': r.id,
        'name': r.name,
        'lotNumber': r.lot_number,
        'manufacturer': r.manufacturer,
        'expiryDate': iso(r.expiry_date),
        'quantity': r.quantity,
        'unit': r.unit,
        'status': r.status,
        'barcode': r.barcode,
        'storageConditions': r.storage_conditions,
    }


def format_equipment(e: LabEquipment) -> dict:
    return {
        'id': e.id,
        'name': e.name,
        'serialNumber': e.serial_number,
        'model': e.model_name,
        'manufacturer': e.manufacturer,
        'status': e.status,
        'barcode': e.barcode,
        'lastCalibration': iso(e.last_calibration),
        'nextCalibration': iso(e.next_calibration),
    }


# -- catalog ------------------------------------------------------------------
def list_catalog(params: dict):
    qs = LabTestCatalog.objects.order_by('name')
    if params.get('category'):
        qs = qs.filter(category__icontains=params['category'])
    if params.get('department'):
        qs = qs.filter(department=params['department'])
    if params.get('isActive') is not None:
        qs = qs.filter(is_active=params['isActive'])
    return qs


def get_catalog(catalog_id) -> LabTestCatalog:
    item = LabTestCatalog.objects.filter(id=catalog_id).first()
    if not item:
        raise NotFound('Lab test catalog item not found')
    return item


def create_catalog(data: dict) -> LabTestCatalog:
    code = data['code'].strip().upper()
    if LabTestCatalog.objects.filter(code=code).exists():
        raise Conflict(f'Test with code {code} already exists')
    return LabTestCatalog.objects.create(
        code=code,
        name=data['name'],
        category=data.get('category') or '',
        department=data.get('department') or '',
        specimen_type=data.get('specimenType') or '',
        description=data.get('description') or '',
        normal_range=data.get('normalRange') or '',
        units=data.get('units') or '',
        turnaround_hours=data.get('turnaroundHours') or 24,
        price=data.get('price') or 0,
    )


# -- orders -------------------------------------------------------------------
def generate_order_number() -> str:
    today = timezone.localdate()
    prefix = f"L{today:%Y%m%d}"
    seq = LabTest.objects.filter(order_number__startswith=prefix).count() + 1
    number = f"{prefix}{seq:04d}"
    while LabTest.objects.filter(order_number=number).exists():
        seq += 1
        number = f"{prefix}{seq:04d}"
    return number


def get_lab_test(test_id) -> LabTest:
    test = (LabTest.objects.select_related('catalog', 'patient__user')
            .filter(id=test_id).first())
    if not test:
        raise NotFound('Lab test not found')
    return test


def _patient(patient_id):
    from hms.services.patients import get_patient
    return get_patient(patient_id)


def _send_to_lis(test: LabTest) -> None:
    try:
        lis.send_order(test)
    except ValidationError:
        # the order stands even if the LIS is unreachable
        logger.exception('LIS delivery failed for order %s', test.order_number)


def _new_order(actor, patient, catalog, data: dict) -> LabTest:
    priority = data.get('priority') or 'ROUTINE'
    return LabTest.objects.create(
        order_number=generate_order_number(),
        patient=patient,
        catalog=catalog,
        ordered_by=actor,
        priority=priority,
        urgent=bool(data.get('urgent')) or priority == 'STAT',
        clinical_notes=data.get('clinicalNotes') or '',
        diagnosis=data.get('diagnosis') or '',
    )


def create_lab_test(actor, data: dict, *, request=None) -> LabTest:
    patient = _patient(data['patientId'])
    catalog = get_catalog(data['catalogId'])
    test = _new_order(actor, patient, catalog, data)
    log_action(user=actor, action='LAB_TEST_ORDERED', resource='lab_test', resource_id=test.id,
               details={'orderNumber': test.order_number, 'testCode': catalog.code},
               flags=['HIPAA'], request=request)
    _send_to_lis(test)
    return test


def create_batch(actor, data: dict, *, request=None) -> list[LabTest]:
    patient = _patient(data['patientId'])
    catalogs = [get_catalog(cid) for cid in data['catalogIds']]
    with transaction.atomic():
        tests = [_new_order(actor, patient, c, data) for c in catalogs]
    log_action(user=actor, action='LAB_TEST_BATCH_ORDERED', resource='lab_test',
               details={'orderNumbers': [t.order_number for t in tests]},
               flags=['HIPAA'], request=request)
    for t in tests:
        _send_to_lis(t)
    return tests


def list_lab_tests(params: dict):
    qs = LabTest.objects.select_related('catalog').annotate(priority_rank=PRIORITY_RANK)
    statuses = split_csv(params.get('status'))
    if statuses:
        qs = qs.filter(status__in=statuses)
    priorities = split_csv(params.get('priority'))
    if priorities:
        qs = qs.filter(priority__in=priorities)
    if params.get('patientId'):
        qs = qs.filter(patient_id=params['patientId'])
    if params.get('catalogId'):
        qs = qs.filter(catalog_id=params['catalogId'])
    if params.get('department'):
        qs = qs.filter(catalog__department=params['department'])
    if params.get('specimenType'):
        qs = qs.filter(catalog__specimen_type__icontains=params['specimenType'])
    if params.get('urgent') is not None:
        qs = qs.filter(urgent=params['urgent'])
    if params.get('orderedBy'):
        qs = qs.filter(ordered_by_id=params['orderedBy'])
    if params.get('dateFrom'):
        qs = qs.filter(ordered_date__date__gte=params['dateFrom'])
    if params.get('dateTo'):
        qs = qs.filter(ordered_date__date__lte=params['dateTo'])
    return qs.order_by('-urgent', '-priority_rank', '-ordered_date')


def pending_tests():
    return list_lab_tests({'status': list(PENDING_STATUSES)})


# -- workflow -----------------------------------------------------------------
def _set_status(test: LabTest, new_status: str, **fields) -> LabTest:
    ensure_transition(LAB_TRANSITIONS, test.status, new_status)
    test.status = new_status
    for attr, value in fields.items():
        setattr(test, attr, value)
    test.save()
    return test


def process_order(actor, test_id, data: dict, *, request=None) -> LabTest:
    """Accept (collect a sample) or reject a freshly ordered test."""
    test = get_lab_test(test_id)
    ensure_status(test, ('ORDERED',), 'Only ORDERED tests can be processed')
    with transaction.atomic():
        if data['action'] == 'ACCEPT':
            LabSample.objects.create(
                lab_test=test,
                barcode=barcode.sample_barcode(test.catalog.code),
                sample_type=data.get('sampleType') or test.catalog.specimen_type,
                collected_by=actor.get_full_name() or actor.username,
                volume=data.get('volume') or '',
                notes=data.get('notes') or '',
            )
            _set_status(test, 'SAMPLE_COLLECTED')
        else:
            _set_status(test, 'REJECTED', rejection_reason=data.get('reason') or '')
    action = 'LAB_ORDER_ACCEPTED' if data['action'] == 'ACCEPT' else 'LAB_ORDER_REJECTED'
    log_action(user=actor, action=action, resource='lab_test',
               resource_id=test.id, details={'orderNumber': test.order_number}, request=request)
    return test


def collect_sample(actor, test_id, data: dict) -> LabSample:
    test = get_lab_test(test_id)
    ensure_status(test, ('ORDERED', 'SAMPLE_COLLECTED'),
                  'Sample can only be collected for ORDERED or SAMPLE_COLLECTED tests')
    fields = {
        'sample_type': data.get('sampleType') or test.catalog.specimen_type,
        'collected_at': timezone.now(),
        'collected_by': actor.get_full_name() or actor.username,
        'volume': data.get('volume') or '',
        'condition': data.get('condition') or 'GOOD',
        'storage_location': data.get('storageLocation') or '',
        'notes': data.get('notes') or '',
    }
    with transaction.atomic():
        sample = test.samples.first()
        if sample:
            for attr, value in fields.items():
                setattr(sample, attr, value)
            sample.save()
        else:
            sample = LabSample.objects.create(
                lab_test=test, barcode=barcode.sample_barcode(test.catalog.code), **fields)
        if test.status == 'ORDERED':
            _set_status(test, 'SAMPLE_COLLECTED')
    return sample


def receive_sample(actor, test_id) -> LabTest:
    test = get_lab_test(test_id)
    ensure_status(test, ('SAMPLE_COLLECTED',), 'Sample must be collected before it can be received')
    with transaction.atomic():
        test.samples.update(received_at=timezone.now(), received_by=actor)
        _set_status(test, 'RECEIVED')
    return test


def enter_results(actor, test_id, results: list[dict], *, request=None) -> LabTest:
    test = get_lab_test(test_id)
    ensure_status(test, ('RECEIVED', 'IN_PROGRESS'),
                  'Results can only be entered for RECEIVED or IN_PROGRESS tests')
    if not test.samples.exists():
        raise ValidationError('No sample collected for this test')

    performer = actor.get_full_name() or actor.username
    with transaction.atomic():
        for item in results:
            LabResult.objects.update_or_create(
                lab_test=test,
                parameter=item['parameter'],
                defaults={
                    'value': item['value'],
                    'unit': item.get('unit') or '',
                    'reference_range': item.get('referenceRange') or '',
                    'flag': item.get('flag') or '',
                    'status': item.get('status') or 'PRELIMINARY',
                    'comments': item.get('comments') or '',
                    'performed_by': performer,
                    'performed_date': timezone.now(),
                },
            )
        final = any((item.get('status') or 'PRELIMINARY') == 'FINAL' for item in results)
        if test.status == 'RECEIVED':
            _set_status(test, 'IN_PROGRESS')
        if final:
            _set_status(test, 'COMPLETED', completed_date=timezone.now())

    critical = [r['parameter'] for r in results if r.get('flag') == 'CRITICAL']
    if critical:
        logger.warning('Critical results on %s: %s', test.order_number, ', '.join(critical))
        broadcast('lab.critical', testId=test.id, orderNumber=test.order_number,
                  patientId=test.patient_id, parameters=critical)
    log_action(user=actor, action='LAB_RESULTS_ENTERED', resource='lab_test', resource_id=test.id,
               details={'parameters': [r['parameter'] for r in results], 'final': final},
               flags=['HIPAA', 'PATIENT_DATA'], request=request)
    return test


def update_status(actor, test_id, new_status: str, reason: str = '') -> LabTest:
    test = get_lab_test(test_id)
    fields = {}
    if new_status == 'COMPLETED':
        fields['completed_date'] = timezone.now()
    elif new_status == 'REJECTED':
        fields['rejection_reason'] = reason
    elif new_status == 'CANCELLED':
        fields['cancellation_reason'] = reason
    return _set_status(test, new_status, **fields)


def cancel_lab_test(actor, test_id, reason: str = '', *, request=None) -> LabTest:
    test = get_lab_test(test_id)
    if test.status in ('COMPLETED', 'CANCELLED'):
        raise ValidationError(f'Cannot cancel a {test.status.lower()} test')
    _set_status(test, 'CANCELLED', cancellation_reason=reason)
    log_action(user=actor, action='LAB_TEST_CANCELLED', resource='lab_test', resource_id=test.id,
               details={'reason': reason}, request=request)
    return test


def statistics(params: dict | None = None) -> dict:
    params = params or {}
    qs = LabTest.objects.all()
    if params.get('dateFrom'):
        qs = qs.filter(ordered_date__date__gte=params['dateFrom'])
    if params.get('dateTo'):
        qs = qs.filter(ordered_date__date__lte=params['dateTo'])

    by_status = {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))}
    by_department: dict[str, dict] = {}
    for row in qs.values('catalog__department', 'status').annotate(n=Count('id')):
        dept = row['catalog__department'] or 'UNASSIGNED'
        bucket = by_department.setdefault(dept, {'total': 0})
        bucket[row['status']] = row['n']
        bucket['total'] += row['n']

    hours = []
    completed = qs.filter(status='COMPLETED').annotate(last_result=Max('results__performed_date'))
    for ordered, last in completed.values_list('ordered_date', 'last_result'):
        if last:
            hours.append((last - ordered).total_seconds() / 3600)

    return {
        'total': qs.count(),
        'ordered': by_status.get('ORDERED', 0),
        'sampleCollected': by_status.get('SAMPLE_COLLECTED', 0),
        'received': by_status.get('RECEIVED', 0),
        'inProgress': by_status.get('IN_PROGRESS', 0),
        'completed': by_status.get('COMPLETED', 0),
        'cancelled': by_status.get('CANCELLED', 0),
        'rejected': by_status.get('REJECTED', 0),
        'urgentPending': qs.filter(urgent=True, status__in=PENDING_STATUSES).count(),
        'averageTurnaroundHours': round(sum(hours) / len(hours), 1) if hours else 0,
        'byDepartment': by_department,
    }


# -- reagents and equipment ---------------------------------------------------
def register_reagent(data: dict) -> LabReagent:
    return LabReagent.objects.create(
        name=data['name'],
        lot_number=data['lotNumber'],
        manufacturer=data.get('manufacturer') or '',
        expiry_date=data['expiryDate'],
        quantity=data.get('quantity') or 0,
        unit=data.get('unit') or '',
        storage_conditions=data.get('storageConditions') or '',
        barcode=barcode.reagent_barcode(data['lotNumber']),
    )


def list_reagents(params: dict):
    qs = LabReagent.objects.order_by('expiry_date')
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    if params.get('expiringDays'):
        qs = qs.filter(expiry_date__lte=timezone.localdate() + timedelta(days=params['expiringDays']))
    return qs


def register_equipment(data: dict) -> LabEquipment:
    if LabEquipment.objects.filter(serial_number=data['serialNumber']).exists():
        raise Conflict(f"Equipment with serial number {data['serialNumber']} already exists")
    try:
        return LabEquipment.objects.create(
            name=data['name'],
            serial_number=data['serialNumber'],
            model_name=data.get('model') or '',
            manufacturer=data.get('manufacturer') or '',
            last_calibration=data.get('lastCalibration'),
            next_calibration=data.get('nextCalibration'),
            barcode=barcode.equipment_barcode(data['serialNumber']),
        )
    except IntegrityError:
        raise Conflict(f"Equipment with serial number {data['serialNumber']} already exists")


def list_equipment(params: dict):
    qs = LabEquipment.objects.order_by('name')
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    return qs
