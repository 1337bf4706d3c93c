"""Radiology orders and their reporting workflow."""
import logging

from django.db.models import Count
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hms.models import RadiologyTest
from hms.services.audit import log_action
from hms.services.common import ensure_status, ensure_transition, iso, split_csv

logger = logging.getLogger(__name__)

RAD_TRANSITIONS = {
    'ORDERED': ['SCHEDULED', 'CANCELLED'],
    'SCHEDULED': ['IN_PROGRESS', 'CANCELLED'],
    'IN_PROGRESS': ['COMPLETED', 'CANCELLED'],
    'COMPLETED': [],
    'CANCELLED': [],
}
PENDING_STATUSES = ('ORDERED', 'SCHEDULED', 'IN_PROGRESS')


def format_radiology_test(t: RadiologyTest, detail: bool = False) -> dict:
    data = {
        'id': t.id,
        'patientId': t.patient_id,
        'testName': t.test_name,
        'modality': t.modality,
        'bodyPart': t.body_part,
        'urgent': t.urgent,
        'status': t.status,
        'clinicalHistory': t.clinical_history,
        'orderedBy': t.ordered_by_id,
        'orderedDate': iso(t.ordered_date),
        'scheduledDate': iso(t.scheduled_date),
        'performedDate': iso(t.performed_date),
        'radiologistId': t.radiologist_id,
        'reportDate': iso(t.report_date),
        'findings': t.findings,
        'impression': t.impression,
        'recommendations': t.recommendations,
        'images': t.images,
        'notes': t.notes,
    }
    if t.cancellation_reason:
        data['cancellationReason'] = t.cancellation_reason
    if detail:
        from hms.services.dicom import format_study
        data['studies'] = [format_study(s) for s in t.studies.order_by('created_at')]
    return data


def get_radiology_test(test_id) -> RadiologyTest:
    test = RadiologyTest.objects.filter(id=test_id).first()
    if not test:
        raise NotFound('Radiology test not found')
    return test


def create_radiology_test(actor, data: dict, *, request=None) -> RadiologyTest:
    from hms.services.patients import get_patient
    patient = get_patient(data['patientId'])
    test = RadiologyTest.objects.create(
        patient=patient,
        test_name=data['testName'],
        modality=data['modality'],
        body_part=data.get('bodyPart') or '',
        urgent=bool(data.get('urgent')),
        clinical_history=data.get('clinicalHistory') or '',
        notes=data.get('notes') or '',
        ordered_by=actor,
    )
    log_action(user=actor, action='RADIOLOGY_TEST_ORDERED', resource='radiology_test', resource_id=test.id,
               details={'modality': test.modality, 'testName': test.test_name},
               flags=['HIPAA'], request=request)
    return test


def list_radiology_tests(params: dict):
    qs = RadiologyTest.objects.all()
    statuses = split_csv(params.get('status'))
    if statuses:
        qs = qs.filter(status__in=statuses)
    if params.get('patientId'):
        qs = qs.filter(patient_id=params['patientId'])
    if params.get('modality'):
        qs = qs.filter(modality=params['modality'])
    if params.get('urgent') is not None:
        qs = qs.filter(urgent=params['urgent'])
    if params.get('dateFrom'):
        qs = qs.filter(ordered_date__date__gte=params['dateFrom'])
    if params.get('dateTo'):
        qs = qs.filter(ordered_date__date__lte=params['dateTo'])
    return qs.order_by('-urgent', '-ordered_date')


UPDATABLE = {
    'testName': 'test_name',
    'bodyPart': 'body_part',
    'urgent': 'urgent',
    'clinicalHistory': 'clinical_history',
    'scheduledDate': 'scheduled_date',
    'findings': 'findings',
    'impression': 'impression',
    'recommendations': 'recommendations',
    'notes': 'notes',
}


def update_radiology_test(actor, test_id, data: dict) -> RadiologyTest:
    test = get_radiology_test(test_id)
    if 'status' in data and data['status'] != test.status:
        ensure_transition(RAD_TRANSITIONS, test.status, data['status'])
        test.status = data['status']
        if test.status == 'COMPLETED':
            test.report_date = timezone.now()
            test.radiologist = test.radiologist or actor
    for key, attr in UPDATABLE.items():
        if key in data:
            setattr(test, attr, data[key])
    test.save()
    return test


def schedule(actor, test_id, scheduled_date) -> RadiologyTest:
    test = get_radiology_test(test_id)
    ensure_status(test, ('ORDERED',), 'Only ORDERED tests can be scheduled')
    ensure_transition(RAD_TRANSITIONS, test.status, 'SCHEDULED')
    test.status = 'SCHEDULED'
    test.scheduled_date = scheduled_date
    test.save()
    return test


def start(actor, test_id) -> RadiologyTest:
    test = get_radiology_test(test_id)
    ensure_status(test, ('SCHEDULED',), 'Only SCHEDULED tests can be started')
    ensure_transition(RAD_TRANSITIONS, test.status, 'IN_PROGRESS')
    test.status = 'IN_PROGRESS'
    test.performed_date = timezone.now()
    test.radiologist = actor
    test.save()
    return test


def complete(actor, test_id, data: dict, *, request=None) -> RadiologyTest:
    test = get_radiology_test(test_id)
    ensure_status(test, ('IN_PROGRESS',), 'Only IN_PROGRESS tests can be completed')
    ensure_transition(RAD_TRANSITIONS, test.status, 'COMPLETED')
    test.status = 'COMPLETED'
    test.report_date = timezone.now()
    test.radiologist = test.radiologist or actor
    test.findings = data['findings']
    test.impression = data['impression']
    test.recommendations = data.get('recommendations') or ''
    if data.get('images') is not None:
        test.images = data['images']
    test.save()
    log_action(user=actor, action='RADIOLOGY_REPORT_COMPLETED', resource='radiology_test',
               resource_id=test.id, flags=['HIPAA', 'PATIENT_DATA'], request=request)
    return test


def cancel(actor, test_id, reason: str = '', *, request=None) -> RadiologyTest:
    test = get_radiology_test(test_id)
    if test.status in ('COMPLETED', 'CANCELLED'):
        raise ValidationError(f'Cannot cancel a {test.status.lower()} test')
    test.status = 'CANCELLED'
    test.cancellation_reason = reason
    test.save()
    log_action(user=actor, action='RADIOLOGY_TEST_CANCELLED', resource='radiology_test',
               resource_id=test.id, details={'reason': reason}, request=request)
    return test


def statistics(day=None) -> dict:
    day = day or timezone.localdate()
    qs = RadiologyTest.objects.all()
    by_modality = {row['modality']: row['n'] for row in qs.values('modality').annotate(n=Count('id'))}
    scheduled = qs.filter(status='SCHEDULED', scheduled_date__date=day).order_by('scheduled_date')
    return {
        'total': qs.count(),
        'pending': qs.filter(status__in=PENDING_STATUSES).count(),
        'completedToday': qs.filter(status='COMPLETED', report_date__date=timezone.localdate()).count(),
        'urgentPending': qs.filter(urgent=True, status__in=PENDING_STATUSES).count(),
        'byModality': by_modality,
        'scheduled': [format_radiology_test(t) for t in scheduled],
    }
