"""Barcodes for lab samples (``L``), reagents (``R``) and equipment (``E``).

A barcode is the prefix, the current millisecond timestamp in base 36, up
to four alphanumerics taken from the test code, lot number or serial
number, and four random hex digits, all upper-case.
"""
import re
import secrets
import string
import time

from rest_framework.exceptions import NotFound, ValidationError

from hms.models import LabEquipment, LabReagent, LabSample

BARCODE_RE = re.compile(r'^[LRE][A-Z0-9]{10,20}$')
TYPES = {'L': 'sample', 'R': 'reagent', 'E': 'equipment'}
_DIGITS = string.digits + string.ascii_uppercase


def _base36(n: int) -> str:
    out = ''
    while n:
        n, r = divmod(n, 36)
        out = _DIGITS[r] + out
    return out or '0'


def _short(value: str) -> str:
    return re.sub(r'[^A-Z0-9]', '', (value or '').upper())[:4]


def _make(prefix: str, source: str) -> str:
    stamp = _base36(int(time.time() * 1000))
    return f"{prefix}{stamp}{_short(source)}{secrets.token_hex(2).upper()}"


def sample_barcode(test_code: str) -> str:
    barcode = _make('L', test_code)
    while LabSample.objects.filter(barcode=barcode).exists():
        barcode = _make('L', test_code)
    return barcode


def reagent_barcode(lot_number: str) -> str:
    barcode = _make('R', lot_number)
    while LabReagent.objects.filter(barcode=barcode).exists():
        barcode = _make('R', lot_number)
    return barcode


def equipment_barcode(serial_number: str) -> str:
    barcode = _make('E', serial_number)
    while LabEquipment.objects.filter(barcode=barcode).exists():
        barcode = _make('E', serial_number)
    return barcode


def is_valid(barcode: str) -> bool:
    return bool(BARCODE_RE.match(barcode or ''))


def lookup(barcode: str):
    """Return ``(type, entity)`` for a barcode; 400 if malformed, 404 if unknown."""
    if not is_valid(barcode):
        raise ValidationError('Invalid barcode format')
    kind = TYPES[barcode[0]]
    if kind == 'sample':
        entity = (LabSample.objects
                  .select_related('lab_test__patient__user', 'lab_test__catalog')
                  .filter(barcode=barcode).first())
    elif kind == 'reagent':
        entity = LabReagent.objects.filter(barcode=barcode).first()
    else:
        entity = LabEquipment.objects.filter(barcode=barcode).first()
    if entity is None:
        raise NotFound(f'{kind} not found for barcode {barcode}')
    return kind, entity


def label_for(kind: str, entity) -> dict:
    if kind == 'sample':
        test = entity.lab_test
        patient_info = test.patient.user.get_full_name()
        test_info = f"{test.catalog.name} ({test.catalog.code})"
        lines = [entity.barcode, patient_info, test_info, entity.collected_at.date().isoformat()]
        return {'barcode': entity.barcode, 'type': kind, 'label': '\n'.join(lines),
                'patientInfo': patient_info, 'testInfo': test_info}
    if kind == 'reagent':
        lines = [entity.barcode, entity.name, f"Lot: {entity.lot_number}"]
    else:
        lines = [entity.barcode, entity.name, f"S/N: {entity.serial_number}"]
    return {'barcode': entity.barcode, 'type': kind, 'label': '\n'.join(lines)}


def labels(barcodes: list[str]) -> list[dict]:
    out = []
    for code in barcodes:
        try:
            kind, entity = lookup(code)
        except (NotFound, ValidationError) as exc:
            detail = exc.detail[0] if isinstance(exc.detail, list) else exc.detail
            out.append({'barcode': code, 'type': 'unknown', 'label': '', 'error': str(detail)})
            continue
        out.append(label_for(kind, entity))
    return out
