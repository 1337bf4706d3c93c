"""Staff records, one per (user, staff type)."""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, ProtectedError
from django.utils import timezone
from rest_framework.exceptions import NotFound

from hms.exceptions import Conflict
from hms.models import StaffMember
from hms.services.audit import log_action
from hms.services.common import iso, money

User = get_user_model()
logger = logging.getLogger(__name__)

# URL segment -> staff type
STAFF_TYPES = {
    'doctors': 'DOCTOR',
    'nurses': 'NURSE',
    'receptionists': 'RECEPTIONIST',
    'lab-technicians': 'LAB_TECHNICIAN',
    'pharmacists': 'PHARMACIST',
    'radiologists': 'RADIOLOGIST',
    'admins': 'ADMIN',
}
LABELS = {
    'DOCTOR': 'doctor',
    'NURSE': 'nurse',
    'RECEPTIONIST': 'receptionist',
    'LAB_TECHNICIAN': 'lab technician',
    'PHARMACIST': 'pharmacist',
    'RADIOLOGIST': 'radiologist',
    'ADMIN': 'admin',
}
FIELDS = {
    'licenseNumber': 'license_number',
    'specialization': 'specialization',
    'department': 'department',
    'experienceYears': 'experience_years',
    'qualifications': 'qualifications',
    'schedule': 'schedule',
    'shift': 'shift',
    'consultationFee': 'consultation_fee',
    'isAvailable': 'is_available',
}


def staff_type_for(segment: str) -> str:
    try:
        return STAFF_TYPES[segment]
    except KeyError:
        raise NotFound(f'Unknown staff type {segment}')


def _article(label: str) -> str:
    return 'an' if label[0] in 'aeiou' else 'a'


def format_staff(s: StaffMember) -> dict:
    return {
        'id': s.id,
        'userId': s.user_id,
        'name': s.user.get_full_name() or s.user.username,
        'email': s.user.email,
        'phone': s.user.phone,
        'staffType': s.staff_type,
        'licenseNumber': s.license_number,
        'specialization': s.specialization,
        'department': s.department,
        'experienceYears': s.experience_years,
        'qualifications': s.qualifications,
        'schedule': s.schedule,
        'shift': s.shift or None,
        'consultationFee': money(s.consultation_fee) if s.consultation_fee is not None else None,
        'isAvailable': s.is_available,
        'createdAt': iso(s.created_at),
    }


def _ensure_license_free(license_number, exclude_id=None) -> None:
    if not license_number:
        return
    qs = StaffMember.objects.filter(license_number=license_number)
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    if qs.exists():
        raise Conflict('License number already exists')


def create_staff(actor, staff_type: str, data: dict, *, request=None) -> StaffMember:
    user = User.objects.filter(id=data['userId']).first()
    if not user:
        raise NotFound('User not found')
    label = LABELS[staff_type]
    if StaffMember.objects.filter(user=user, staff_type=staff_type).exists():
        raise Conflict(f'User is already registered as {_article(label)} {label}')
    _ensure_license_free(data.get('licenseNumber'))

    member = StaffMember(user=user, staff_type=staff_type)
    for key, attr in FIELDS.items():
        if key in data and data[key] is not None:
            setattr(member, attr, data[key])
    member.license_number = member.license_number or None
    member.save()
    log_action(user=actor, action='STAFF_CREATED', resource='staff', resource_id=member.id,
               details={'staffType': staff_type, 'userId': user.id}, request=request)
    return member


def list_staff(staff_type: str, params: dict):
    qs = StaffMember.objects.select_related('user').filter(staff_type=staff_type)
    for key in ('specialization', 'department', 'shift'):
        if params.get(key):
            qs = qs.filter(**{f'{key}__icontains': params[key]})
    if params.get('isAvailable') is not None:
        qs = qs.filter(is_available=params['isAvailable'])
    return qs.order_by('user__last_name', 'user__first_name', 'id')


def get_staff(staff_type: str, staff_id) -> StaffMember:
    member = StaffMember.objects.select_related('user').filter(id=staff_id, staff_type=staff_type).first()
    if not member:
        raise NotFound(f'{LABELS[staff_type].capitalize()} not found')
    return member


def update_staff(actor, staff_type: str, staff_id, data: dict, *, request=None) -> StaffMember:
    member = get_staff(staff_type, staff_id)
    if data.get('licenseNumber') and data['licenseNumber'] != member.license_number:
        _ensure_license_free(data['licenseNumber'], exclude_id=member.id)
    for key, attr in FIELDS.items():
        if key in data:
            setattr(member, attr, data[key])
    member.license_number = member.license_number or None
    member.save()
    log_action(user=actor, action='STAFF_UPDATED', resource='staff', resource_id=member.id,
               details={'fields': sorted(data)}, request=request)
    return member


def delete_staff(actor, staff_type: str, staff_id, *, request=None) -> None:
    member = get_staff(staff_type, staff_id)
    if staff_type == 'DOCTOR' and member.appointments.filter(
            status__in=('SCHEDULED', 'CONFIRMED'), appointment_date__gte=timezone.now()).exists():
        raise Conflict('Cannot delete doctor with active appointments')
    try:
        with transaction.atomic():
            member.delete()
    except ProtectedError:
        raise Conflict('Cannot delete doctor with appointment history')
    log_action(user=actor, action='STAFF_DELETED', resource='staff', resource_id=staff_id,
               details={'staffType': staff_type}, request=request)


def statistics() -> dict:
    counts = {row['staff_type']: row['n'] for row in
              StaffMember.objects.values('staff_type').annotate(n=Count('id'))}
    by_type = {code: counts.get(code, 0) for code in LABELS}
    return {
        'total': sum(by_type.values()),
        'available': StaffMember.objects.filter(is_available=True).count(),
        'byType': by_type,
    }
