import logging
import secrets
from datetime import date

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hms.exceptions import Conflict
from hms.models import Patient
from hms.services.audit import log_action
from hms.services.common import calculate_age, iso
from hms.services.encryption import PHICrypto, mask

User = get_user_model()
logger = logging.getLogger(__name__)

PHI_FLAGS = ['HIPAA', 'PATIENT_DATA']
MIN_SELF_REGISTRATION_AGE = 18


def generate_mrn() -> str:
    year = str(timezone.now().year)
    seq = Patient.objects.filter(mrn__startswith=year).count() + 1
    mrn = f"{year}{seq:06d}"
    while Patient.objects.filter(mrn=mrn).exists():
        seq += 1
        mrn = f"{year}{seq:06d}"
    return mrn


def _protect_insurance(info: dict | None) -> dict:
    info = dict(info or {})
    policy = info.get('policyNumber')
    if policy and not PHICrypto.is_encrypted(policy):
        info['policyNumber'] = PHICrypto.encrypt(str(policy))
    return info


def reveal_insurance(info: dict | None) -> dict:
    """Insurance info with the policy number decrypted then masked."""
    info = dict(info or {})
    policy = info.get('policyNumber')
    if policy:
        try:
            info['policyNumber'] = mask(PHICrypto.decrypt(policy))
        except ValueError:
            info['policyNumber'] = mask(str(policy))
    return info


def get_patient(patient_id) -> Patient:
    patient = Patient.objects.select_related('user').filter(id=patient_id).first()
    if not patient:
        raise NotFound('Patient not found')
    return patient


def format_patient(p: Patient) -> dict:
    return {
        'id': p.id,
        'mrn': p.mrn,
        'userId': p.user_id,
        'firstName': p.user.first_name,
        'lastName': p.user.last_name,
        'name': p.user.get_full_name() or p.user.username,
        'email': p.user.email,
        'phone': p.user.phone,
        'dateOfBirth': iso(p.date_of_birth),
        'age': calculate_age(p.date_of_birth),
        'gender': p.gender,
        'bloodType': p.blood_type or None,
        'emergencyContact': p.emergency_contact,
        'emergencyPhone': p.emergency_phone,
        'address': p.address,
        'insuranceInfo': reveal_insurance(p.insurance_info),
        'allergies': p.allergies,
        'currentMedications': p.current_medications,
        'registrationType': p.registration_type,
        'isActive': p.is_active,
        'lastCheckIn': iso(p.last_check_in),
        'createdAt': iso(p.created_at),
    }


def register_patient(actor, data: dict, *, request=None):
    """Create the patient user and record.

    Returns ``(patient, initial_password)``; ``initial_password`` is only
    set when the caller did not choose one.
    """
    dob: date = data['dateOfBirth']
    if data.get('registrationType') == 'SELF' and calculate_age(dob) < MIN_SELF_REGISTRATION_AGE:
        raise ValidationError('Patient must be at least 18 years old for self-registration')

    email = data['email'].strip().lower()
    if User.objects.filter(Q(email__iexact=email) | Q(username__iexact=email)).exists():
        raise Conflict('User with this email already exists')

    password = data.get('password') or None
    initial_password = None
    if password:
        try:
            validate_password(password)
        except DjangoValidationError as e:
            raise ValidationError({'password': e.messages})
    else:
        password = initial_password = secrets.token_urlsafe(12)

    with transaction.atomic():
        user = User.objects.create_user(
            username=email,
            email=email,
            password=password,
            first_name=data['firstName'],
            last_name=data['lastName'],
            role='patient',
            phone=data.get('phone') or '',
        )
        patient = Patient.objects.create(
            user=user,
            mrn=generate_mrn(),
            date_of_birth=dob,
            gender=data['gender'],
            blood_type=data.get('bloodType') or '',
            emergency_contact=data.get('emergencyContact') or '',
            emergency_phone=data.get('emergencyPhone') or '',
            address=data.get('address') or {},
            insurance_info=_protect_insurance(data.get('insuranceInfo')),
            medical_history=data.get('medicalHistory') or {},
            allergies=data.get('allergies') or [],
            current_medications=data.get('currentMedications') or [],
            registration_type=data.get('registrationType') or 'STAFF',
        )

    log_action(user=actor, action='PATIENT_REGISTERED', resource='patient', resource_id=patient.id,
               details={'mrn': patient.mrn, 'registrationType': patient.registration_type},
               flags=PHI_FLAGS, request=request)
    logger.info('Registered patient %s', patient.mrn)
    return patient, initial_password


def list_patients(search: str | None = None):
    qs = Patient.objects.select_related('user').order_by('-created_at')
    if search:
        qs = qs.filter(
            Q(user__first_name__icontains=search)
            | Q(user__last_name__icontains=search)
            | Q(user__email__icontains=search)
            | Q(mrn__icontains=search)
        )
    return qs


def search_patients(params: dict) -> tuple[list[Patient], int]:
    qs = Patient.objects.select_related('user')
    query = (params.get('query') or '').strip()
    if query:
        qs = qs.filter(
            Q(mrn__icontains=query)
            | Q(user__first_name__icontains=query)
            | Q(user__last_name__icontains=query)
            | Q(user__email__icontains=query)
            | Q(user__phone__icontains=query)
        )
    if params.get('mrn'):
        qs = qs.filter(mrn=params['mrn'])
    if params.get('dateOfBirth'):
        qs = qs.filter(date_of_birth=params['dateOfBirth'])
    if params.get('gender'):
        qs = qs.filter(gender=params['gender'])
    if params.get('bloodType'):
        qs = qs.filter(blood_type=params['bloodType'])
    if params.get('insuranceProvider'):
        qs = qs.filter(insurance_info__provider__icontains=params['insuranceProvider'])
    total = qs.count()
    limit = params.get('limit') or 20
    offset = params.get('offset') or 0
    return list(qs.order_by('-created_at')[offset:offset + limit]), total


def check_in(actor, mrn: str, *, request=None) -> Patient:
    patient = Patient.objects.select_related('user').filter(mrn=mrn).first()
    if not patient:
        raise NotFound('Patient not found')
    if not patient.is_active:
        raise ValidationError('Patient account is inactive')
    patient.last_check_in = timezone.now()
    patient.save(update_fields=['last_check_in'])
    log_action(user=actor, action='PATIENT_CHECKIN', resource='patient', resource_id=patient.id,
               details={'mrn': mrn}, flags=PHI_FLAGS, request=request)
    return patient


USER_FIELDS = {'firstName': 'first_name', 'lastName': 'last_name', 'phone': 'phone', 'email': 'email'}
PATIENT_FIELDS = {
    'dateOfBirth': 'date_of_birth',
    'gender': 'gender',
    'bloodType': 'blood_type',
    'emergencyContact': 'emergency_contact',
    'emergencyPhone': 'emergency_phone',
    'address': 'address',
    'medicalHistory': 'medical_history',
    'allergies': 'allergies',
    'currentMedications': 'current_medications',
    'isActive': 'is_active',
}


def update_patient(actor, patient_id, data: dict, *, request=None) -> Patient:
    patient = get_patient(patient_id)
    user = patient.user
    if 'email' in data:
        email = data['email'].strip().lower()
        if User.objects.filter(email__iexact=email).exclude(id=user.id).exists():
            raise Conflict('User with this email already exists')
        data = {**data, 'email': email}

    changed = []
    with transaction.atomic():
        for key, attr in USER_FIELDS.items():
            if key in data:
                setattr(user, attr, data[key])
                changed.append(key)
        if 'email' in data:
            user.username = data['email']
        user.save()
        for key, attr in PATIENT_FIELDS.items():
            if key in data:
                setattr(patient, attr, data[key])
                changed.append(key)
        if 'insuranceInfo' in data:
            patient.insurance_info = _protect_insurance(data['insuranceInfo'])
            changed.append('insuranceInfo')
        patient.save()

    log_action(user=actor, action='PATIENT_INFO_UPDATED', resource='patient', resource_id=patient.id,
               details={'fields': changed}, flags=PHI_FLAGS, request=request)
    return patient


def medical_summary(patient_id) -> dict:
    from hms.services.appointments import format_appointment
    from hms.services.laboratory import format_lab_test
    from hms.services.pharmacy import format_prescription
    from hms.services.radiology import format_radiology_test

    patient = get_patient(patient_id)
    appointments = patient.appointments.select_related('doctor__user').order_by('-appointment_date')[:10]
    lab_tests = (patient.lab_tests.select_related('catalog')
                 .filter(status='COMPLETED').order_by('-ordered_date')[:10])
    radiology = patient.radiology_tests.filter(status='COMPLETED').order_by('-ordered_date')[:10]
    prescriptions = (patient.prescriptions.select_related('medication')
                     .filter(status='ACTIVE').order_by('-prescribed_date'))
    return {
        'patient': {
            'id': patient.id,
            'mrn': patient.mrn,
            'name': patient.user.get_full_name(),
            'dateOfBirth': iso(patient.date_of_birth),
            'age': calculate_age(patient.date_of_birth),
            'gender': patient.gender,
            'bloodType': patient.blood_type or None,
            'allergies': patient.allergies,
            'currentMedications': patient.current_medications,
        },
        'recentAppointments': [format_appointment(a) for a in appointments],
        'recentLabTests': [format_lab_test(t) for t in lab_tests],
        'recentRadiologyTests': [format_radiology_test(t) for t in radiology],
        'activePrescriptions': [format_prescription(p) for p in prescriptions],
    }
