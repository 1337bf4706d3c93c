from datetime import datetime, time, timedelta

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hms.models import Appointment, Patient, StaffMember
from hms.services.audit import log_action
from hms.services.common import iso

ACTIVE_STATUSES = ('SCHEDULED', 'CONFIRMED')


def _day_bounds(day):
    start = timezone.make_aware(datetime.combine(day, time.min))
    return start, start + timedelta(days=1)


def format_appointment(a: Appointment) -> dict:
    return {
        'id': a.id,
        'patientId': a.patient_id,
        'patientName': a.patient.user.get_full_name(),
        'mrn': a.patient.mrn,
        'doctorId': a.doctor_id,
        'doctorName': a.doctor.user.get_full_name() or a.doctor.user.username,
        'department': a.doctor.department,
        'appointmentDate': iso(a.appointment_date),
        'duration': a.duration,
        'type': a.type,
        'status': a.status,
        'reason': a.reason,
        'notes': a.notes,
        'createdAt': iso(a.created_at),
    }


def _base_qs():
    return Appointment.objects.select_related('patient__user', 'doctor__user')


def get_appointment(appointment_id) -> Appointment:
    appt = _base_qs().filter(id=appointment_id).first()
    if not appt:
        raise NotFound('Appointment not found')
    return appt


def _get_doctor(doctor_id) -> StaffMember:
    doctor = StaffMember.objects.select_related('user').filter(id=doctor_id, staff_type='DOCTOR').first()
    if not doctor:
        raise NotFound('Doctor not found')
    return doctor


def _ensure_slot_free(doctor_id, when, exclude_id=None) -> None:
    clash = Appointment.objects.filter(doctor_id=doctor_id, appointment_date=when, status__in=ACTIVE_STATUSES)
    if exclude_id:
        clash = clash.exclude(id=exclude_id)
    if clash.exists():
        raise ValidationError('Doctor already has an appointment at this time')


def create_appointment(actor, data: dict, *, request=None) -> Appointment:
    patient = Patient.objects.filter(id=data['patientId']).first()
    if not patient:
        raise NotFound('Patient not found')
    doctor = _get_doctor(data['doctorId'])
    with transaction.atomic():
        _ensure_slot_free(doctor.id, data['appointmentDate'])
        appt = Appointment.objects.create(
            patient=patient,
            doctor=doctor,
            appointment_date=data['appointmentDate'],
            duration=data.get('duration') or 30,
            type=data.get('type') or 'CONSULTATION',
            reason=data.get('reason') or '',
            notes=data.get('notes') or '',
        )
    log_action(user=actor, action='APPOINTMENT_CREATED', resource='appointment', resource_id=appt.id,
               details={'patientId': patient.id, 'doctorId': doctor.id}, flags=['HIPAA'], request=request)
    return get_appointment(appt.id)


def list_appointments(params: dict):
    qs = _base_qs().order_by('appointment_date')
    if params.get('patientId'):
        qs = qs.filter(patient_id=params['patientId'])
    if params.get('doctorId'):
        qs = qs.filter(doctor_id=params['doctorId'])
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    if params.get('date'):
        start, end = _day_bounds(params['date'])
        qs = qs.filter(appointment_date__gte=start, appointment_date__lt=end)
    return qs


FIELD_MAP = {
    'appointmentDate': 'appointment_date',
    'duration': 'duration',
    'type': 'type',
    'status': 'status',
    'reason': 'reason',
    'notes': 'notes',
}


def update_appointment(actor, appointment_id, data: dict, *, request=None) -> Appointment:
    appt = get_appointment(appointment_id)
    if 'doctorId' in data:
        appt.doctor = _get_doctor(data['doctorId'])
    for key, attr in FIELD_MAP.items():
        if key in data:
            setattr(appt, attr, data[key])
    if ('doctorId' in data or 'appointmentDate' in data) and appt.status in ACTIVE_STATUSES:
        _ensure_slot_free(appt.doctor_id, appt.appointment_date, exclude_id=appt.id)
    appt.save()
    log_action(user=actor, action='APPOINTMENT_UPDATED', resource='appointment', resource_id=appt.id,
               details={'fields': sorted(data.keys())}, request=request)
    return get_appointment(appt.id)


def delete_appointment(actor, appointment_id, *, request=None) -> None:
    appt = get_appointment(appointment_id)
    appt.delete()
    log_action(user=actor, action='APPOINTMENT_DELETED', resource='appointment', resource_id=appointment_id,
               request=request)


def cancel_appointment(actor, appointment_id, reason: str | None = None, *, request=None) -> Appointment:
    appt = get_appointment(appointment_id)
    if appt.status == 'CANCELLED':
        raise ValidationError('Appointment is already cancelled')
    appt.status = 'CANCELLED'
    if reason:
        appt.notes = f"{appt.notes}\nCancellation reason: {reason}".strip()
    appt.save(update_fields=['status', 'notes', 'updated_at'])
    log_action(user=actor, action='APPOINTMENT_CANCELLED', resource='appointment', resource_id=appt.id,
               details={'reason': reason or ''}, request=request)
    return appt


def doctor_schedule(doctor_id, day) -> list[Appointment]:
    _get_doctor(doctor_id)
    start, end = _day_bounds(day)
    return list(
        _base_qs()
        .filter(doctor_id=doctor_id, appointment_date__gte=start, appointment_date__lt=end)
        .exclude(status='CANCELLED')
        .order_by('appointment_date')
    )


def patient_appointments(patient_id):
    if not Patient.objects.filter(id=patient_id).exists():
        raise NotFound('Patient not found')
    return _base_qs().filter(patient_id=patient_id).order_by('-appointment_date')


def appointment_stats() -> dict:
    start, end = _day_bounds(timezone.localdate())
    qs = Appointment.objects.all()
    return {
        'total': qs.count(),
        'scheduled': qs.filter(status='SCHEDULED').count(),
        'completed': qs.filter(status='COMPLETED').count(),
        'cancelled': qs.filter(status='CANCELLED').count(),
        'today': qs.filter(appointment_date__gte=start, appointment_date__lt=end).count(),
    }
