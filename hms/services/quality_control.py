"""Laboratory quality control: control runs, evaluation and statistics."""
import logging
import re
from datetime import timedelta

from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms.models import LabEquipment, LabQualityControl, LabReagent
from hms.services.common import iso

logger = logging.getLogger(__name__)

RANGE_RE = re.compile(r'(\d+(?:\.\d+)?)\s*[-±]\s*(\d+(?:\.\d+)?)')
NUMBER_RE = re.compile(r'\s*([-+]?(?:\d+\.?\d*|\.\d+))')
RESULTS = ('PASS', 'FAIL', 'WARNING', 'INVALID')


def _leading_number(value: str):
    m = NUMBER_RE.match(value or '')
    return float(m.group(1)) if m else None


def evaluate(expected_range: str, actual_value: str) -> str:
    """Classify a control reading against ``expected_range``.

    The range is read as ``center ± tolerance`` (``"4.0 ± 0.5"``; a hyphen
    is accepted in place of ``±``).  Inside the range is PASS, within a
    further 10% of the bounds is WARNING, anything else FAIL.  Readings
    or ranges that cannot be parsed are INVALID.
    """
    actual = _leading_number(actual_value)
    if actual is None:
        return 'INVALID'
    m = RANGE_RE.search(expected_range or '')
    if not m:
        return 'INVALID'
    center, tolerance = float(m.group(1)), float(m.group(2))
    lower, upper = center - tolerance, center + tolerance
    if lower <= actual <= upper:
        return 'PASS'
    if lower * 0.9 <= actual <= upper * 1.1:
        return 'WARNING'
    return 'FAIL'


def format_qc(qc: LabQualityControl) -> dict:
    return {
        'id': qc.id,
        'reagentId': qc.reagent_id,
        'parameter': qc.parameter,
        'controlLot': qc.control_lot,
        'controlLevel': qc.control_level,
        'expectedRange': qc.expected_range,
        'actualValue': qc.actual_value,
        'result': qc.result,
        'performedBy': qc.performed_by_id,
        'performedAt': iso(qc.performed_at),
        'correctiveAction': qc.corrective_action or None,
        'notes': qc.notes,
    }


def _control_reagent(control_lot: str, reagent_id=None) -> LabReagent:
    qs = LabReagent.objects.filter(status='ACTIVE')
    if reagent_id:
        reagent = qs.filter(id=reagent_id).first()
    else:
        reagent = qs.filter(Q(name__icontains=control_lot) | Q(lot_number=control_lot)).order_by('expiry_date').first()
    if not reagent:
        raise ValidationError(f'Control material {control_lot} not found or inactive')
    if reagent.expiry_date < timezone.localdate():
        raise ValidationError(f'Control material {control_lot} has expired')
    return reagent


def record_qc(actor, data: dict) -> LabQualityControl:
    reagent = _control_reagent(data['controlLot'], data.get('reagentId'))
    result = evaluate(data['expectedRange'], data['actualValue'])
    corrective = ''
    if result == 'FAIL':
        corrective = (f"QC failure on {data['parameter']}: hold patient results, "
                      f"recalibrate and rerun control lot {data['controlLot']}")
        logger.warning('QC FAIL parameter=%s lot=%s value=%s expected=%s', data['parameter'],
                       data['controlLot'], data['actualValue'], data['expectedRange'])
    return LabQualityControl.objects.create(
        reagent=reagent,
        parameter=data['parameter'],
        control_lot=data['controlLot'],
        control_level=data.get('controlLevel') or 'NORMAL',
        expected_range=data['expectedRange'],
        actual_value=data['actualValue'],
        result=result,
        performed_by=actor,
        corrective_action=corrective,
        notes=data.get('notes') or '',
    )


def qc_history(parameter: str, days: int = 30) -> list[LabQualityControl]:
    since = timezone.now() - timedelta(days=days)
    return list(LabQualityControl.objects.filter(parameter=parameter, performed_at__gte=since)
                .order_by('-performed_at'))


def _rate(passed: int, total: int) -> int:
    return round(passed / total * 100) if total else 0


def qc_statistics(parameter: str | None = None, days: int = 30) -> dict:
    since = timezone.now() - timedelta(days=days)
    qs = LabQualityControl.objects.filter(performed_at__gte=since)
    if parameter:
        qs = qs.filter(parameter=parameter)
    stats = {'total': 0, 'pass': 0, 'fail': 0, 'warning': 0, 'invalid': 0}
    by_parameter: dict[str, dict] = {}
    for param, result in qs.values_list('parameter', 'result'):
        key = result.lower()
        stats['total'] += 1
        stats[key] += 1
        bucket = by_parameter.setdefault(param, {'total': 0, 'pass': 0, 'fail': 0, 'warning': 0, 'invalid': 0})
        bucket['total'] += 1
        bucket[key] += 1
    for bucket in by_parameter.values():
        bucket['passRate'] = _rate(bucket['pass'], bucket['total'])
    return {**stats, 'passRate': _rate(stats['pass'], stats['total']), 'byParameter': by_parameter}


def qc_dashboard() -> dict:
    today = timezone.localdate()
    week_ago = timezone.now() - timedelta(days=7)
    failing = (LabQualityControl.objects.filter(result='FAIL', performed_at__gte=week_ago)
               .values_list('parameter', flat=True).distinct())
    due = LabEquipment.objects.filter(next_calibration__lte=today + timedelta(days=7),
                                      status='OPERATIONAL').order_by('next_calibration')
    expiring = LabReagent.objects.filter(expiry_date__lte=today + timedelta(days=30),
                                         status='ACTIVE').order_by('expiry_date')
    return {
        'qcStats': qc_statistics(days=7),
        'failingParameters': sorted(set(failing)),
        'equipmentDueCalibration': [
            {'id': e.id, 'name': e.name, 'serialNumber': e.serial_number, 'nextCalibration': iso(e.next_calibration)}
            for e in due
        ],
        'expiringReagents': [
            {'id': r.id, 'name': r.name, 'lotNumber': r.lot_number, 'expiryDate': iso(r.expiry_date)}
            for r in expiring
        ],
    }
