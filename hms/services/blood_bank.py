"""
Blood bank: donors, donations, unit inventory, crossmatching and issue.

A donor may give blood again only after ``DONATION_INTERVAL_DAYS`` (56)
days.  Each recorded donation yields one AVAILABLE unit whose shelf life
depends on the component.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hms.exceptions import Conflict
from hms.models import BLOOD_TYPE_CHOICES, BloodCrossmatch, BloodDonation, BloodDonor, BloodUnit
from hms.realtime.notify import broadcast
from hms.services.audit import log_action
from hms.services.common import calculate_age, iso

logger = logging.getLogger(__name__)

BLOOD_TYPES = [code for code, _ in BLOOD_TYPE_CHOICES]
# days
SHELF_LIFE = {
    'WHOLE_BLOOD': 35,
    'RED_CELLS': 42,
    'PLASMA': 365,
    'PLATELETS': 5,
}


def format_donor(d: BloodDonor, with_donations: bool = False) -> dict:
    data = {
        'id': d.id,
        'donorNumber': d.donor_number,
        'firstName': d.first_name,
        'lastName': d.last_name,
        'dateOfBirth': iso(d.date_of_birth),
        'age': calculate_age(d.date_of_birth),
        'gender': d.gender,
        'bloodType': d.blood_type,
        'phone': d.phone,
        'email': d.email,
        'address': d.address,
        'weightKg': float(d.weight_kg) if d.weight_kg is not None else None,
        'isEligible': d.is_eligible,
        'lastDonationDate': iso(d.last_donation_date),
        'nextEligibleDate': iso(next_eligible_date(d)),
        'totalDonations': d.total_donations,
    }
    if with_donations:
        data['donations'] = [format_donation(x) for x in d.donations.order_by('-donation_date')]
    return data


def format_donation(d: BloodDonation) -> dict:
    return {
        'id': d.id,
        'donorId': d.donor_id,
        'donationDate': iso(d.donation_date),
        'bloodType': d.blood_type,
        'component': d.component,
        'quantityMl': d.quantity_ml,
        'hemoglobin': float(d.hemoglobin) if d.hemoglobin is not None else None,
        'status': d.status,
        'screeningResults': d.screening_results,
        'collectedBy': d.collected_by_id,
        'notes': d.notes,
    }


def format_unit(u: BloodUnit) -> dict:
    return {
        'id': u.id,
        'unitNumber': u.unit_number,
        'donationId': u.donation_id,
        'bloodType': u.blood_type,
        'component': u.component,
        'volumeMl': u.volume_ml,
        'collectionDate': iso(u.collection_date),
        'expiryDate': iso(u.expiry_date),
        'status': u.status,
        'storageLocation': u.storage_location,
        'patientId': u.patient_id,
        'issuedBy': u.issued_by_id,
        'issuedAt': iso(u.issued_at),
    }


def format_crossmatch(c: BloodCrossmatch) -> dict:
    return {
        'id': c.id,
        'patientId': c.patient_id,
        'bloodUnitId': c.blood_unit_id,
        'requestedBy': c.requested_by_id,
        'requestedAt': iso(c.requested_at),
        'result': c.result,
        'performedBy': c.performed_by_id,
        'performedAt': iso(c.performed_at),
        'notes': c.notes,
    }


# -- donors -------------------------------------------------------------------
def _next_number(model, field: str, prefix: str, width: int) -> str:
    seq = model.objects.filter(**{f'{field}__startswith': prefix}).count() + 1
    number = f"{prefix}{seq:0{width}d}"
    while model.objects.filter(**{field: number}).exists():
        seq += 1
        number = f"{prefix}{seq:0{width}d}"
    return number


def next_eligible_date(donor: BloodDonor):
    if not donor.last_donation_date:
        return None
    return donor.last_donation_date + timedelta(days=settings.DONATION_INTERVAL_DAYS)


def register_donor(actor, data: dict) -> BloodDonor:
    if BloodDonor.objects.filter(phone=data['phone']).exists():
        raise Conflict('Donor with this phone number already exists')
    email = (data.get('email') or '').strip().lower() or None
    if email and BloodDonor.objects.filter(email__iexact=email).exists():
        raise Conflict('Donor with this email already exists')
    donor = BloodDonor.objects.create(
        donor_number=_next_number(BloodDonor, 'donor_number', f"D{timezone.now():%Y}", 5),
        first_name=data['firstName'],
        last_name=data['lastName'],
        date_of_birth=data['dateOfBirth'],
        gender=data['gender'],
        blood_type=data['bloodType'],
        phone=data['phone'],
        email=email,
        address=data.get('address') or {},
        weight_kg=data.get('weightKg'),
    )
    logger.info('Registered blood donor %s', donor.donor_number)
    return donor


def list_donors(params: dict):
    qs = BloodDonor.objects.order_by('last_name', 'first_name')
    if params.get('bloodType'):
        qs = qs.filter(blood_type=params['bloodType'])
    if params.get('eligible') is not None:
        cutoff = timezone.now() - timedelta(days=settings.DONATION_INTERVAL_DAYS)
        eligible = Q(is_eligible=True) & (Q(last_donation_date__isnull=True) | Q(last_donation_date__lte=cutoff))
        qs = qs.filter(eligible) if params['eligible'] else qs.exclude(eligible)
    return qs


def get_donor(donor_id) -> BloodDonor:
    donor = BloodDonor.objects.filter(id=donor_id).first()
    if not donor:
        raise NotFound('Donor not found')
    return donor


# -- donations ----------------------------------------------------------------
def ensure_eligible(donor: BloodDonor, when=None) -> None:
    when = when or timezone.now()
    last = donor.donations.order_by('-donation_date').values_list('donation_date', flat=True).first()
    last = last or donor.last_donation_date
    if last and (when - last).days < settings.DONATION_INTERVAL_DAYS:
        raise ValidationError('Donor is not eligible for donation yet')
    if not donor.is_eligible:
        raise ValidationError('Donor is marked as ineligible')


def record_donation(actor, data: dict, *, request=None) -> tuple[BloodDonation, BloodUnit]:
    donor = get_donor(data['donorId'])
    ensure_eligible(donor)
    quantity = data['quantityMl']
    if not 100 <= quantity <= 500:
        raise ValidationError('Donation quantity must be between 100 and 500 ml')
    component = data.get('component') or 'WHOLE_BLOOD'
    now = timezone.now()

    with transaction.atomic():
        donation = BloodDonation.objects.create(
            donor=donor,
            donation_date=now,
            blood_type=data.get('bloodType') or donor.blood_type,
            component=component,
            quantity_ml=quantity,
            hemoglobin=data.get('hemoglobin'),
            screening_results=data.get('screeningResults') or {},
            collected_by=actor,
            notes=data.get('notes') or '',
        )
        donor.last_donation_date = now
        donor.total_donations += 1
        donor.save(update_fields=['last_donation_date', 'total_donations'])
        unit = BloodUnit.objects.create(
            unit_number=_next_number(BloodUnit, 'unit_number', f"BU{now:%Y%m%d}", 4),
            donation=donation,
            blood_type=donation.blood_type,
            component=component,
            volume_ml=quantity,
            collection_date=now,
            expiry_date=now + timedelta(days=SHELF_LIFE[component]),
            storage_location=data.get('storageLocation') or '',
        )

    log_action(user=actor, action='BLOOD_DONATION_RECORDED', resource='blood_donation',
               resource_id=donation.id, details={'donor': donor.donor_number, 'unit': unit.unit_number},
               request=request)
    return donation, unit


def list_donations(params: dict):
    qs = BloodDonation.objects.order_by('-donation_date')
    if params.get('donorId'):
        qs = qs.filter(donor_id=params['donorId'])
    if params.get('bloodType'):
        qs = qs.filter(blood_type=params['bloodType'])
    if params.get('dateFrom'):
        qs = qs.filter(donation_date__date__gte=params['dateFrom'])
    if params.get('dateTo'):
        qs = qs.filter(donation_date__date__lte=params['dateTo'])
    return qs


# -- inventory ----------------------------------------------------------------
def _available():
    return BloodUnit.objects.filter(status='AVAILABLE', expiry_date__gt=timezone.now())


def inventory() -> dict:
    summary = {bt: {'total': 0} for bt in BLOOD_TYPES}
    rows = _available().values('blood_type', 'component').annotate(n=Count('id'))
    for row in rows:
        bucket = summary.setdefault(row['blood_type'], {'total': 0})
        bucket[row['component']] = row['n']
        bucket['total'] += row['n']
    return {'byBloodType': summary, 'totalAvailable': sum(b['total'] for b in summary.values())}


def units_by_type(blood_type: str):
    return _available().filter(blood_type=blood_type).order_by('expiry_date')


def get_unit(unit_id) -> BloodUnit:
    unit = BloodUnit.objects.filter(id=unit_id).first()
    if not unit:
        raise NotFound('Blood unit not found')
    return unit


# -- crossmatch ---------------------------------------------------------------
def request_crossmatch(actor, data: dict) -> BloodCrossmatch:
    from hms.services.patients import get_patient
    patient = get_patient(data['patientId'])
    unit = get_unit(data['bloodUnitId'])
    return BloodCrossmatch.objects.create(
        patient=patient, blood_unit=unit, requested_by=actor, notes=data.get('notes') or '')


def perform_crossmatch(actor, crossmatch_id, result: str, notes: str = '') -> BloodCrossmatch:
    cm = BloodCrossmatch.objects.filter(id=crossmatch_id).first()
    if not cm:
        raise NotFound('Crossmatch request not found')
    if cm.result:
        raise ValidationError('Crossmatch has already been performed')
    cm.result = result
    cm.performed_by = actor
    cm.performed_at = timezone.now()
    if notes:
        cm.notes = f"{cm.notes}\n{notes}".strip()
    cm.save()
    return cm


def pending_crossmatches():
    return BloodCrossmatch.objects.filter(result__isnull=True).order_by('requested_at')


def issue_unit(actor, unit_id, patient_id, *, request=None) -> BloodUnit:
    from hms.services.patients import get_patient
    with transaction.atomic():
        unit = BloodUnit.objects.select_for_update().filter(id=unit_id).first()
        if not unit:
            raise NotFound('Blood unit not found')
        if unit.status != 'AVAILABLE':
            raise ValidationError('Blood unit is not available')
        if unit.expiry_date < timezone.now():
            raise ValidationError('Blood unit has expired')
        patient = get_patient(patient_id)
        unit.status = 'ISSUED'
        unit.patient = patient
        unit.issued_by = actor
        unit.issued_at = timezone.now()
        unit.save()
    log_action(user=actor, action='BLOOD_UNIT_ISSUED', resource='blood_unit', resource_id=unit.id,
               details={'unitNumber': unit.unit_number, 'patientId': patient.id},
               flags=['HIPAA'], request=request)
    low = [a for a in low_stock_alerts() if a['bloodType'] == unit.blood_type]
    if low:
        broadcast('blood.low_stock', **low[0])
    return unit


# -- alerts and jobs ----------------------------------------------------------
def low_stock_alerts() -> list[dict]:
    threshold = settings.BLOOD_LOW_STOCK_THRESHOLD
    counts = dict(_available().values_list('blood_type').annotate(n=Count('id')))
    alerts = []
    for bt in BLOOD_TYPES:
        n = counts.get(bt, 0)
        if n < threshold:
            alerts.append({'bloodType': bt, 'availableUnits': n, 'status': 'LOW_STOCK'})
    return alerts


def expiring_units(days: int | None = None):
    days = settings.BLOOD_EXPIRY_WARNING_DAYS if days is None else days
    until = timezone.now() + timedelta(days=days)
    return BloodUnit.objects.filter(status='AVAILABLE', expiry_date__lte=until).order_by('expiry_date')


def expire_units() -> int:
    """Mark available units past their expiry date as EXPIRED."""
    n = BloodUnit.objects.filter(status='AVAILABLE', expiry_date__lte=timezone.now()).update(status='EXPIRED')
    if n:
        logger.info('Expired %d blood units', n)
    return n
